"""
Abstract Graph Database Interface

This module defines the error taxonomy shared by every layer of the core and
the abstract interfaces a store adapter must implement. The repository layer
only ever talks to a `DatabaseSession`, which keeps the query compiler and the
mutation protocol independent of the concrete driver.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence


# ================================
# Error Taxonomy
# ================================

class GraphKBError(Exception):
    """Base class for all errors raised by the knowledge base core."""

    def __init__(self, message: str = "", sql: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.sql = sql
        self.details = details

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the error to a JSON-friendly dictionary.

        Returns:
            Dict[str, Any]: name, message and (when known) the failed statement
        """
        result = {"name": self.name, "message": self.message, **self.details}
        if self.sql:
            result["sql"] = self.sql
        return result

    def __str__(self) -> str:
        return self.message


class ValidationError(GraphKBError):
    """Raised when input data or a query description fails validation."""
    pass


class NoRecordFoundError(GraphKBError):
    """Raised when a selection returns fewer records than required."""
    pass


class MultipleRecordsFoundError(GraphKBError):
    """Raised when a selection returns more (or other than) the expected number of records."""
    pass


class RecordConflictError(GraphKBError):
    """Raised on an active-index violation or a delete blocked by dependent records."""
    pass


class PermissionDeniedError(GraphKBError, PermissionError):
    """Raised when the acting user lacks the rights to create, modify or link records."""
    pass


class OperationNotImplementedError(GraphKBError, NotImplementedError):
    """Raised for mutation paths the store cannot perform atomically."""
    pass


class DatabaseConnectionError(GraphKBError):
    """Raised when the store cannot be reached or the connection fails."""
    pass


class DatabaseRequestError(GraphKBError):
    """Raised when the store rejects or fails to execute a statement."""
    pass


class ConcurrentModificationError(DatabaseRequestError):
    """Raised when a guarded statement matched no record because it changed since selection."""
    pass


# ================================
# Store Interfaces
# ================================

class DatabaseSession(ABC):
    """
    A single unit of work against the store.

    Sessions are acquired from a `GraphDatabase` for the duration of one
    request and must be released on every exit path.
    """

    @abstractmethod
    async def query(self, statement: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Execute a single statement in auto-commit mode.

        Args:
            statement: The parameterized statement text
            params: The parameter bindings

        Returns:
            List[Dict[str, Any]]: Records converted to plain dictionaries

        Raises:
            DatabaseRequestError: If the store rejects the statement
            DatabaseConnectionError: If the connection fails
        """
        pass

    @abstractmethod
    async def commit(self, steps: Sequence[Any]) -> List[Dict[str, Any]]:
        """
        Execute an ordered list of transaction steps as one atomic unit.

        Args:
            steps: Transaction steps (see `graphkb.database.transaction`)

        Returns:
            List[Dict[str, Any]]: The records returned by the final step

        Raises:
            ConcurrentModificationError: If a guarded step did not match exactly one record
            DatabaseRequestError: If any step fails (nothing is committed)
        """
        pass


class GraphDatabase(ABC):
    """
    Abstract base class for graph database adapters.

    This interface defines connection management and session acquisition.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the database adapter with configuration.

        Args:
            config: Database configuration dictionary
        """
        self.config = config
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if the database is connected."""
        return self._connected

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the database.

        Raises:
            DatabaseConnectionError: If connection fails
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close the database connection.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the database is healthy and responsive.

        Returns:
            bool: True if database is healthy, False otherwise
        """
        pass

    @abstractmethod
    def session(self):
        """
        Acquire a session scoped to an ``async with`` block.

        The session is released when the block exits, including on error.
        """
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
