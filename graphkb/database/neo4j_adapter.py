"""
Neo4j Database Adapter

This module implements the GraphDatabase interface for Neo4j using the official
Neo4j Python driver with async support. Driver exceptions are translated into
the core error taxonomy at this boundary.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from neo4j import AsyncGraphDatabase, AsyncDriver, AsyncSession, RoutingControl
from neo4j.exceptions import (
    ConstraintError,
    DriverError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
)

from .base import (
    ConcurrentModificationError,
    DatabaseConnectionError,
    DatabaseRequestError,
    DatabaseSession,
    GraphDatabase,
    RecordConflictError,
    ValidationError,
)
from .records import record_to_dict
from .transaction import describe_steps, display_statement

logger = logging.getLogger(__name__)


def wrap_driver_error(err: Exception, sql: Optional[str] = None) -> Exception:
    """
    Translate a driver exception into the matching typed error.

    Args:
        err: The exception raised by the driver
        sql: Display form of the statement that was attempted

    Returns:
        Exception: The typed error (unrecognized errors are returned unchanged)
    """
    if isinstance(err, ConstraintError):
        return RecordConflictError(str(err.message or err), sql=sql)
    if isinstance(err, (ServiceUnavailable, SessionExpired)):
        return DatabaseConnectionError(f"Neo4j connection failed: {err}", sql=sql)
    if isinstance(err, Neo4jError):
        # server messages can be very long, keep the first line only
        message = str(err.message or err).split("\n")[0]
        return DatabaseRequestError(message, sql=sql, code=err.code)
    if isinstance(err, DriverError):
        return DatabaseConnectionError(f"Neo4j driver error: {err}", sql=sql)
    return err


class Neo4jSession(DatabaseSession):
    """A request-scoped session over a driver session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def query(self, statement: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        params = params or {}
        logger.debug(display_statement(statement, params))

        try:
            result = await self._session.run(statement, params)
            records = [record async for record in result]
        except (Neo4jError, DriverError) as e:
            logger.error(f"Error in executing the statement ({statement}): {e}")
            raise wrap_driver_error(e, display_statement(statement, params)) from e

        logger.debug(f"statement returned {len(records)} records")
        return [record_to_dict(list(record.keys()), list(record.values())) for record in records]

    async def commit(self, steps: Sequence[Any]) -> List[Dict[str, Any]]:
        if not steps:
            raise ValidationError("Cannot commit an empty transaction")

        sql = describe_steps(steps)
        logger.debug(sql)
        tx = await self._session.begin_transaction()

        try:
            records = []
            for step in steps:
                statement, params = step.to_cypher()
                result = await tx.run(statement, params)
                records = [record async for record in result]

                if step.expected_rows is not None and len(records) != step.expected_rows:
                    raise ConcurrentModificationError(
                        f"Failed to modify. Expected {step.expected_rows} record(s) to match "
                        f"but found {len(records)}; the record may have been changed by another request",
                        sql=sql,
                    )
            await tx.commit()
        except Exception as e:
            if not tx.closed():
                await tx.rollback()
            if isinstance(e, (Neo4jError, DriverError)):
                logger.error(f"Transaction failed: {e}")
                raise wrap_driver_error(e, sql) from e
            raise

        return [record_to_dict(list(record.keys()), list(record.values())) for record in records]


class Neo4jAdapter(GraphDatabase):
    """
    Neo4j implementation of the GraphDatabase interface.

    The driver owns the connection pool; each request borrows one session
    through `session()` and returns it when the block exits.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the Neo4j adapter.

        Args:
            config: Configuration dictionary containing:
                - uri: Neo4j connection URI (e.g., "neo4j://localhost:7687")
                - username: Database username
                - password: Database password
                - database: Target database name (optional, defaults to "neo4j")
        """
        super().__init__(config)
        self.driver: Optional[AsyncDriver] = None
        self.database = config.get("database", "neo4j")

        required_fields = ["uri", "username", "password"]
        for field in required_fields:
            if field not in config:
                raise ValidationError(f"Missing required configuration field: {field}")

    async def connect(self) -> None:
        """
        Establish connection to Neo4j database.

        Raises:
            DatabaseConnectionError: If connection fails
        """
        try:
            self.driver = AsyncGraphDatabase.driver(
                self.config["uri"],
                auth=(self.config["username"], self.config["password"]),
                max_connection_pool_size=self.config.get("max_connection_pool_size", 10),
                connection_acquisition_timeout=self.config.get("connection_timeout", 30)
            )

            await self.driver.verify_connectivity()
            self._connected = True
            logger.info("Successfully connected to Neo4j database")

        except (Neo4jError, DriverError) as e:
            logger.error(f"Failed to connect to Neo4j: {e}")
            raise DatabaseConnectionError(f"Neo4j connection failed: {e}") from e

    async def disconnect(self) -> None:
        """
        Close the Neo4j connection.
        """
        if self.driver:
            await self.driver.close()
            self._connected = False
            logger.info("Disconnected from Neo4j database")

    async def health_check(self) -> bool:
        """
        Check if the database is healthy and responsive.

        Returns:
            bool: True if database is healthy, False otherwise
        """
        if not self.driver or not self._connected:
            return False

        try:
            await self.driver.execute_query(
                "RETURN 1 as health_check",
                database_=self.database,
                routing_=RoutingControl.READ
            )
            return True
        except (Neo4jError, DriverError) as e:
            logger.warning(f"Health check failed: {e}")
            return False

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Neo4jSession]:
        """
        Borrow a session from the pool for the duration of the block.

        Raises:
            DatabaseConnectionError: If the adapter is not connected
        """
        if not self.driver or not self._connected:
            raise DatabaseConnectionError("Database is not connected")

        async with self.driver.session(database=self.database) as session:
            yield Neo4jSession(session)
