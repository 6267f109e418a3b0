"""erpforge: AI-assisted data-entry screens backed by a schema-driven store."""

__version__ = "0.1.0"
