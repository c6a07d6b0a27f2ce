"""Schema documents: models, loading, validation, caching and context filtering."""

from schemacrud.schema.context import ContextFilter, parse_context
from schemacrud.schema.loader import (
    DirectorySchemaSource,
    MappingSchemaSource,
    SchemaParser,
    SchemaSource,
)
from schemacrud.schema.models import (
    ActionDef,
    ActionType,
    Context,
    DetailDef,
    FieldDef,
    ForeignKeyRelationship,
    ManyToManyRelationship,
    ManyToManyThroughRelationship,
    Relationship,
    Schema,
)
from schemacrud.schema.store import SchemaStore
from schemacrud.schema.translator import DictTranslator, SchemaTranslator, Translator

__all__ = [
    "ActionDef",
    "ActionType",
    "Context",
    "ContextFilter",
    "DetailDef",
    "DictTranslator",
    "DirectorySchemaSource",
    "FieldDef",
    "ForeignKeyRelationship",
    "ManyToManyRelationship",
    "ManyToManyThroughRelationship",
    "MappingSchemaSource",
    "Relationship",
    "Schema",
    "SchemaParser",
    "SchemaSource",
    "SchemaStore",
    "SchemaTranslator",
    "Translator",
    "parse_context",
]
