"""
GraphKB Core

Record mutation and query-translation engine for a strongly typed
vertex/edge knowledge base stored in a property-graph database:
- Query compilation from declarative JSON-shaped query descriptions
- Schema-validated record creation with active-index uniqueness
- Copy-on-write updates and soft deletes preserving record lineage
"""

__version__ = "0.1.0"
__author__ = "GraphKB Team"
__description__ = "GraphKB knowledge base query and mutation core"
