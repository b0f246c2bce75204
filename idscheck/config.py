"""Global configuration: paths, constants, settings."""

from pathlib import Path

# Default location of the persistent properties cache
DEFAULT_CACHE_PATH = Path(".idscheck") / "properties.sqlite"

# IFC classes treated as extractable building elements by the IFC source.
# Using the base class captures all subtypes (IfcWall, IfcDoor, IfcSlab, etc.)
ELEMENT_BASE_CLASS = "IfcBuildingElement"

# Entity class assigned when no strategy can resolve one
DEFAULT_ENTITY_CLASS = "IfcProduct"

# Streaming extraction: raw records per batch and worker processes
STREAM_BATCH_SIZE = 128
WORKER_COUNT = 2

# Bounded task queue between the orchestrator and the workers
TASK_QUEUE_SIZE = 8

# Direct extraction: concurrent fetches against the source
FETCH_CONCURRENCY = 8

# Validation executor: elements per chunk between progress/cancel checks
VALIDATION_CHUNK_SIZE = 200

# Maximum length of a stringified object value
MAX_VALUE_LENGTH = 500

# Maximum nesting followed when unwrapping value-holder objects
MAX_UNWRAP_DEPTH = 8

# Field spellings that carry the element identity
GLOBAL_ID_KEYS = ("GlobalId", "GlobalID", "globalId", "guid", "Guid", "GUID")
GLOBAL_ID_KEYWORDS = ("globalid", "global id", "guid", "uniqueid")

# Field spellings that carry the entity class
CLASS_KEYS = (
    "ifcClass",
    "IfcClass",
    "type",
    "Type",
    "expressType",
    "ExpressType",
    "entity",
    "Entity",
)
CATEGORY_KEYS = ("_category", "category", "Category")
CLASS_KEYWORDS = ("ifcclass", "ifc type", "type")

# Value-type and container tokens that are never an element's entity class
NON_ENTITY_CLASS_PATTERNS = (
    r"IFCLABEL",
    r"IFCIDENTIFIER",
    r"IFCTEXT",
    r"IFCBOOLEAN",
    r"IFCLOGICAL",
    r"IFCREAL",
    r"IFCINTEGER",
    r"IFC\w*MEASURE",
    r"IFCPROPERTY\w*",
    r"IFCELEMENTQUANTITY",
    r"IFCQUANTITY\w*",
    r"IFCRELDEFINES\w*",
    r"IFCCOMPLEXPROPERTY",
)

# Relations that hold property-set containers
PSET_CONTAINER_KEYS = (
    "IsDefinedBy",
    "isDefinedBy",
    "PropertySets",
    "propertySets",
    "psets",
    "Psets",
)

# Collections that hold the properties of one property set
PROPERTY_COLLECTION_KEYS = (
    "HasProperties",
    "hasProperties",
    "Properties",
    "properties",
    "Quantities",
    "quantities",
)

# Fields of a property-set object that are metadata, not properties
PSET_METADATA_KEYS = frozenset(
    {
        "Name",
        "name",
        "type",
        "Type",
        "GlobalId",
        "GlobalID",
        "id",
        "_localId",
        "_category",
        "_guid",
        "Description",
        "OwnerHistory",
    }
)

# Keys of a single property that hold its value, in priority order
PROPERTY_VALUE_KEYS = (
    "NominalValue",
    "nominalValue",
    "Value",
    "value",
    "DataValue",
    "dataValue",
    "LengthValue",
    "AreaValue",
    "CountValue",
    "VolumeValue",
    "WeightValue",
    "TimeValue",
    "NumberValue",
    "BooleanValue",
    "LogicalValue",
    "TextValue",
    "IntegerValue",
    "UpperBoundValue",
    "LowerBoundValue",
    "EnumerationValues",
    "ListValues",
)
