"""schemacrud - schema-driven dynamic query, relationship and action engine."""

__version__ = "0.1.0"
