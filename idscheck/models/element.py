"""Element models: raw records from a model source and their flattened form.

A raw record is whatever the host data source hands over for one element: an
arbitrarily nested, self-describing graph.  The flattener turns it into a
:class:`FlattenedElement`, the only element shape the validation executor and
the properties cache ever see.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawElementRecord(BaseModel):
    """One element as produced by a streaming source.

    ``data`` is opaque and owned by the source; it is never mutated here.
    """

    model_config = ConfigDict(frozen=True)

    model_id: str = ""
    local_id: int = 0
    data: dict[str, Any] = Field(default_factory=dict)


class FlattenedElement(BaseModel):
    """A building element reduced to a flat ``{path: value}`` property map.

    Property keys are normalized ``"<SetName>.<PropertyName>"`` tokens plus
    the reserved keys ``GlobalId``, ``ifcClass`` and ``Attributes.*``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    global_id: str = Field(alias="GlobalId")
    entity_class: str = Field(alias="EntityClass")
    properties: dict[str, str] = Field(default_factory=dict)

    def get(self, path: str) -> str | None:
        """Look up *path* by exact key, then case-insensitively."""
        if path in self.properties:
            return self.properties[path]
        lowered = path.lower()
        for key, value in self.properties.items():
            if key.lower() == lowered:
                return value
        return None

    def to_dict(self) -> dict[str, Any]:
        """Return the aliased dict form used for persistence."""
        return self.model_dump(by_alias=True)
