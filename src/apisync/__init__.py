"""apisync - Mapping-driven synchronization between local entities and an OData API."""

__version__ = "0.1.0"
