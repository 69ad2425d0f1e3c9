"""
Database adapter package: error taxonomy, store interfaces, the Neo4j adapter
and the typed transaction steps used by the mutation commands.
"""

from typing import Dict, Any

from .base import (
    GraphDatabase,
    DatabaseSession,
    GraphKBError,
    ValidationError,
    NoRecordFoundError,
    MultipleRecordsFoundError,
    RecordConflictError,
    PermissionDeniedError,
    OperationNotImplementedError,
    DatabaseConnectionError,
    DatabaseRequestError,
    ConcurrentModificationError,
)
from .neo4j_adapter import Neo4jAdapter, Neo4jSession, wrap_driver_error
from .records import RID, CLASS, flatten_record, nest_record, property_ref
from .transaction import (
    ConditionalUpdate,
    CreateRecord,
    RelinkEdge,
    Select,
    describe_steps,
    display_statement,
)


def create_database(db_type: str, config: Dict[str, Any]) -> GraphDatabase:
    """
    Factory function to create database adapter instances.

    Args:
        db_type: Database type (only "neo4j" is supported)
        config: Configuration dictionary for the adapter

    Returns:
        GraphDatabase: Initialized database adapter instance

    Raises:
        ValueError: If unsupported database type is specified
        ValidationError: If configuration is invalid
    """
    db_type_lower = db_type.lower().strip()

    if db_type_lower == "neo4j":
        return Neo4jAdapter(config)
    raise ValueError(f"Unsupported database type: {db_type}. Supported types: 'neo4j'")


# Export all public classes and functions
__all__ = [
    # Base classes and exceptions
    "GraphDatabase",
    "DatabaseSession",
    "GraphKBError",
    "ValidationError",
    "NoRecordFoundError",
    "MultipleRecordsFoundError",
    "RecordConflictError",
    "PermissionDeniedError",
    "OperationNotImplementedError",
    "DatabaseConnectionError",
    "DatabaseRequestError",
    "ConcurrentModificationError",
    # Adapter implementation
    "Neo4jAdapter",
    "Neo4jSession",
    "wrap_driver_error",
    # Records and transactions
    "RID",
    "CLASS",
    "flatten_record",
    "nest_record",
    "property_ref",
    "ConditionalUpdate",
    "CreateRecord",
    "RelinkEdge",
    "Select",
    "describe_steps",
    "display_statement",
    # Factory function
    "create_database",
]
