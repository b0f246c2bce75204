"""Tests for the IFC file source.

All tests build a synthetic IFC4 model in memory with ifcopenshell's API and
scan it through the extraction pipeline.
"""

from __future__ import annotations

from pathlib import Path

import pytest

ifcopenshell = pytest.importorskip("ifcopenshell")
import ifcopenshell.api  # noqa: E402

from idscheck.compiler import compile_rules  # noqa: E402
from idscheck.compliance import ValidationExecutor  # noqa: E402
from idscheck.errors import ExtractionSourceError  # noqa: E402
from idscheck.extraction import ExtractionPipeline, flatten  # noqa: E402
from idscheck.extraction.ifc import IfcFileSource, element_graph, extract_psets  # noqa: E402


# ---------------------------------------------------------------------------
# Fixtures: synthetic IFC files
# ---------------------------------------------------------------------------


def _build_minimal_ifc() -> ifcopenshell.file:
    """Return an IFC4 file with one wall, one door, and one slab.

    Only the wall carries Pset_WallCommon (IsExternal, FireRating).
    """
    f = ifcopenshell.file(schema="IFC4")

    proj = ifcopenshell.api.run("root.create_entity", f, ifc_class="IfcProject", name="SyntheticProject")
    site = ifcopenshell.api.run("root.create_entity", f, ifc_class="IfcSite", name="TestSite")
    building = ifcopenshell.api.run("root.create_entity", f, ifc_class="IfcBuilding", name="TestBuilding")
    storey = ifcopenshell.api.run("root.create_entity", f, ifc_class="IfcBuildingStorey", name="Level 1")
    ifcopenshell.api.run("aggregate.assign_object", f, products=[site], relating_object=proj)
    ifcopenshell.api.run("aggregate.assign_object", f, products=[building], relating_object=site)
    ifcopenshell.api.run("aggregate.assign_object", f, products=[storey], relating_object=building)

    wall = ifcopenshell.api.run("root.create_entity", f, ifc_class="IfcWall", name="ExteriorWall")
    pset = ifcopenshell.api.run("pset.add_pset", f, product=wall, name="Pset_WallCommon")
    ifcopenshell.api.run(
        "pset.edit_pset",
        f,
        pset=pset,
        properties={"IsExternal": True, "FireRating": "2HR"},
    )

    door = ifcopenshell.api.run("root.create_entity", f, ifc_class="IfcDoor", name="EntryDoor")
    slab = ifcopenshell.api.run("root.create_entity", f, ifc_class="IfcSlab", name="GroundSlab")
    ifcopenshell.api.run(
        "spatial.assign_container", f, products=[wall, door, slab], relating_structure=storey
    )
    return f


@pytest.fixture(scope="module")
def ifc_file() -> ifcopenshell.file:
    return _build_minimal_ifc()


@pytest.fixture(scope="module")
def ifc_path(tmp_path_factory, ifc_file) -> Path:
    path = tmp_path_factory.mktemp("ifc") / "synthetic.ifc"
    ifc_file.write(str(path))
    return path


def _wall(ifc_file):
    return ifc_file.by_type("IfcWall")[0]


RULES = """\
<ids xmlns="http://standards.buildingsmart.org/IDS">
  <specifications>
    <specification name="Wall fire rating" identifier="WALL-01">
      <applicability>
        <entity><name><simpleValue>IFCWALL</simpleValue></name></entity>
      </applicability>
      <requirements>
        <property>
          <propertySet><simpleValue>Pset_WallCommon</simpleValue></propertySet>
          <baseName><simpleValue>FireRating</simpleValue></baseName>
          <value><simpleValue>2HR</simpleValue></value>
        </property>
      </requirements>
    </specification>
    <specification name="Slab load bearing" identifier="SLAB-01">
      <applicability>
        <entity><name><simpleValue>IFCSLAB</simpleValue></name></entity>
      </applicability>
      <requirements>
        <property>
          <propertySet><simpleValue>Pset_SlabCommon</simpleValue></propertySet>
          <baseName><simpleValue>LoadBearing</simpleValue></baseName>
        </property>
      </requirements>
    </specification>
  </specifications>
</ids>
"""


# ---------------------------------------------------------------------------
# Graph building
# ---------------------------------------------------------------------------


class TestElementGraph:
    def test_extract_psets(self, ifc_file):
        psets = extract_psets(_wall(ifc_file))
        assert psets["Pset_WallCommon"]["FireRating"] == "2HR"
        assert psets["Pset_WallCommon"]["IsExternal"] is True
        assert "id" not in psets["Pset_WallCommon"]

    def test_graph_shape(self, ifc_file):
        graph = element_graph(_wall(ifc_file))
        assert graph["ifcClass"] == "IfcWall"
        assert graph["Name"] == "ExteriorWall"
        (pset,) = graph["PropertySets"]
        assert pset["Name"] == "Pset_WallCommon"
        assert {p["Name"] for p in pset["HasProperties"]} == {"IsExternal", "FireRating"}

    def test_flattened(self, ifc_file):
        element = flatten(element_graph(_wall(ifc_file)))
        assert element.global_id == _wall(ifc_file).GlobalId
        assert element.entity_class == "IfcWall"
        assert element.properties["Pset_WallCommon.FireRating"] == "2HR"
        assert element.properties["Pset_WallCommon.IsExternal"] == "true"
        assert element.properties["Attributes.Name"] == "ExteriorWall"


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------


class TestIfcFileSource:
    def test_identities(self, ifc_file):
        source = IfcFileSource(ifc_file)
        identities = source.list_identities()
        assert len(identities) == 3
        assert source.count_elements() == 3
        assert _wall(ifc_file).GlobalId in identities

    def test_fetch(self, ifc_file):
        source = IfcFileSource(ifc_file)
        record = source.fetch(_wall(ifc_file).GlobalId)
        assert record.local_id == _wall(ifc_file).id()
        assert record.data["ifcClass"] == "IfcWall"
        assert source.fetch("0000000000000000000000") is None

    def test_batches(self, ifc_file):
        batches = list(IfcFileSource(ifc_file).iter_batches(2))
        assert [len(b) for b in batches] == [2, 1]

    def test_opens_path_lazily(self, ifc_path):
        source = IfcFileSource(ifc_path)
        assert source.model_id == "synthetic.ifc"
        assert len(source.list_identities()) == 3

    def test_missing_file(self, tmp_path):
        source = IfcFileSource(tmp_path / "absent.ifc")
        with pytest.raises(ExtractionSourceError):
            source.list_identities()

    def test_base_class(self, ifc_file):
        source = IfcFileSource(ifc_file, base_class="IfcWall")
        assert source.list_identities() == [_wall(ifc_file).GlobalId]


class TestEndToEnd:
    def test_validate_ifc(self, ifc_file):
        elements = ExtractionPipeline(worker_count=0).run(IfcFileSource(ifc_file))
        result = ValidationExecutor().evaluate(compile_rules(RULES), elements)

        wall_summary, slab_summary = result.rules
        assert wall_summary.passed_ids == [_wall(ifc_file).GlobalId]
        assert len(wall_summary.na_ids) == 2
        assert len(slab_summary.failed_ids) == 1
        assert len(slab_summary.na_ids) == 2
        failed = [r for r in result.rows if r.status == "FAILED"]
        assert failed[0].reason == "Property missing"
        assert failed[0].entity_class == "IfcSlab"
