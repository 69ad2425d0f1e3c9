#!/usr/bin/env python3
"""
Pytest configuration and shared fixtures for the test suite.

Provides the default schema, users with different group permissions, record
factories, and an in-memory session that records every statement and
transaction submitted to it.
"""

import pytest
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from graphkb.database.base import DatabaseSession
from graphkb.models import Permission, load_schema


def rid(number: int) -> str:
    """Deterministic record id for test records."""
    return f"00000000-0000-4000-8000-{number:012d}"


# ================================
# Fake Store Session
# ================================

@dataclass
class FakeSession(DatabaseSession):
    """
    Session answering queries from a queue of canned responses.

    Each `query` call consumes the next response (an empty result once the
    queue is exhausted); a queued exception is raised instead of returned.
    Transactions return `commit_result` (or raise `commit_error`).
    """
    responses: List[Any] = field(default_factory=list)
    commit_result: Optional[List[Dict[str, Any]]] = None
    commit_error: Optional[Exception] = None

    queries: List[Any] = field(default_factory=list)
    commits: List[List[Any]] = field(default_factory=list)

    async def query(self, statement: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        self.queries.append((statement, dict(params or {})))
        if not self.responses:
            return []
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def commit(self, steps: Sequence[Any]) -> List[Dict[str, Any]]:
        self.commits.append(list(steps))
        if self.commit_error is not None:
            raise self.commit_error
        if self.commit_result is not None:
            return self.commit_result
        return [{"@rid": rid(999)}]

    @property
    def statements(self) -> List[str]:
        return [statement for statement, _ in self.queries]


# ================================
# Core Fixtures
# ================================

@pytest.fixture(scope="session")
def schema():
    """The default class set."""
    return load_schema()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


def make_user(
    name: str = "admin",
    permissions: Optional[Dict[str, int]] = None,
    user_rid: str = rid(900),
    group_rid: str = rid(901),
) -> Dict[str, Any]:
    """User record with a single expanded group."""
    return {
        "@rid": user_rid,
        "@class": "User",
        "name": name,
        "groups": [{
            "@rid": group_rid,
            "@class": "UserGroup",
            "name": name,
            "permissions": permissions or {},
        }],
    }


@pytest.fixture
def admin_user(schema) -> Dict[str, Any]:
    """User whose group grants every permission on every class."""
    groups = {group["name"]: group["permissions"] for group in schema.default_group_permissions()}
    return make_user("admin", groups["admin"])


@pytest.fixture
def readonly_user(schema) -> Dict[str, Any]:
    """User whose group grants read access only."""
    permissions = {name: int(Permission.READ) for name in schema.models}
    return make_user("reader", permissions, user_rid=rid(910), group_rid=rid(911))


# ================================
# Record Factories
# ================================

@pytest.fixture
def record_factory():
    """Factory for stored records as a select returns them."""
    def create_record(number: int, cls: str = "Disease", **content: Any) -> Dict[str, Any]:
        record = {
            "@rid": rid(number),
            "@class": cls,
            "createdAt": 1000 + number,
            "createdBy": rid(900),
        }
        if cls in ("Disease", "Therapy", "Feature", "Vocabulary", "AnatomicalEntity"):
            record.update({
                "sourceId": f"term{number}",
                "name": f"term{number}",
                "source": rid(1),
                "deprecated": False,
            })
        record.update(content)
        return record

    return create_record
