"""Element source over an IFC file opened with ifcopenshell."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator

import ifcopenshell
import ifcopenshell.util.element

from idscheck.config import ELEMENT_BASE_CLASS
from idscheck.errors import ExtractionSourceError
from idscheck.extraction.sources import ElementSource
from idscheck.models.element import RawElementRecord

logger = logging.getLogger(__name__)

_SCALAR_ATTRIBUTES = ("Name", "Description", "ObjectType", "Tag")


def _plain(value: Any) -> Any:
    """Make an IFC value picklable and JSON-safe."""
    if isinstance(value, ifcopenshell.entity_instance):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def extract_psets(element: ifcopenshell.entity_instance) -> dict[str, dict[str, Any]]:
    """Return all property and quantity sets of *element*, keyed by set name."""
    try:
        raw = ifcopenshell.util.element.get_psets(element)
    except Exception:
        logger.debug("Pset extraction failed for %s", element.GlobalId, exc_info=True)
        return {}

    cleaned: dict[str, dict[str, Any]] = {}
    for pset_name, props in raw.items():
        # "id" is ifcopenshell's internal step id
        cleaned[pset_name] = {k: _plain(v) for k, v in props.items() if k != "id"}
    return cleaned


def element_graph(element: ifcopenshell.entity_instance) -> dict[str, Any]:
    """Build the raw graph of one IFC element.

    Property sets are emitted in the explicit ``HasProperties`` shape so a
    property literally called ``Name`` is not mistaken for set metadata.
    """
    graph: dict[str, Any] = {
        "GlobalId": element.GlobalId,
        "ifcClass": element.is_a(),
    }
    for attr in _SCALAR_ATTRIBUTES:
        value = getattr(element, attr, None)
        if value is not None:
            graph[attr] = _plain(value)
    predefined = ifcopenshell.util.element.get_predefined_type(element)
    if predefined:
        graph["PredefinedType"] = predefined
    graph["PropertySets"] = [
        {
            "Name": pset_name,
            "HasProperties": [
                {"Name": name, "NominalValue": value} for name, value in props.items()
            ],
        }
        for pset_name, props in extract_psets(element).items()
    ]
    return graph


class IfcFileSource(ElementSource):
    """Stream the building elements of an IFC2x3 / IFC4 file.

    Parameters
    ----------
    ifc:
        Path to an ``.ifc`` file, or an already opened ``ifcopenshell.file``.
    base_class:
        Root entity class whose instances are scanned.
    """

    def __init__(
        self,
        ifc: str | Path | ifcopenshell.file,
        *,
        base_class: str = ELEMENT_BASE_CLASS,
    ) -> None:
        if isinstance(ifc, ifcopenshell.file):
            self._file: ifcopenshell.file | None = ifc
            self.model_id = "memory"
        else:
            self._path = Path(ifc)
            self._file = None
            self.model_id = self._path.name
        self.base_class = base_class

    @property
    def ifc_file(self) -> ifcopenshell.file:
        """Lazily open and return the IFC file."""
        if self._file is None:
            try:
                self._file = ifcopenshell.open(str(self._path))
            except (OSError, RuntimeError) as exc:
                raise ExtractionSourceError(f"Cannot open {self._path}: {exc}") from exc
            logger.info("Opened %s (schema %s)", self._path, self._file.schema)
        return self._file

    def _elements(self) -> list[ifcopenshell.entity_instance]:
        try:
            return list(self.ifc_file.by_type(self.base_class))
        except RuntimeError as exc:
            raise ExtractionSourceError(
                f"Entity class {self.base_class} not in schema {self.ifc_file.schema}"
            ) from exc

    def _record(self, element: ifcopenshell.entity_instance) -> RawElementRecord:
        return RawElementRecord(
            model_id=self.model_id,
            local_id=element.id(),
            data=element_graph(element),
        )

    @property
    def supports_streaming(self) -> bool:
        return True

    def list_identities(self) -> list[str]:
        return [e.GlobalId for e in self._elements()]

    def fetch(self, identity: str) -> RawElementRecord | None:
        try:
            element = self.ifc_file.by_guid(identity)
        except RuntimeError:
            return None
        return self._record(element)

    def iter_batches(self, batch_size: int) -> Iterator[list[RawElementRecord]]:
        size = max(1, batch_size)
        elements = self._elements()
        for start in range(0, len(elements), size):
            yield [self._record(e) for e in elements[start : start + size]]

    def count_elements(self) -> int | None:
        return len(self._elements())
