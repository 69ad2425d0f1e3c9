#!/usr/bin/env python3
"""
Tests for the create commands: vertices, edges and users.
"""

import pytest

from graphkb.database.base import (
    DatabaseRequestError,
    NoRecordFoundError,
    PermissionDeniedError,
    RecordConflictError,
    ValidationError,
)
from graphkb.repo import create, create_user

from conftest import rid

CREATED = {"@rid": rid(999), "@class": "Disease"}


class TestCreateVertex:
    """Test creating vertex records."""

    @pytest.mark.asyncio
    async def test_create_disease(self, schema, session, admin_user):
        session.responses = [[], [CREATED]]

        result = await create(session, schema, "Disease", {
            "sourceId": "DOID:162",
            "source": {"@rid": rid(1)},
            "name": "Cancer",
        }, admin_user)

        assert result == CREATED
        index_check, insert = session.queries
        assert index_check[0].startswith("MATCH (n0:Disease) WHERE (n0.deprecated = $param0 AND n0.name = $param1")
        assert insert[0] == "CREATE (n:Disease:Ontology:Biomarker:V $content) RETURN n {.*} AS record"

        content = insert[1]["content"]
        assert content["@class"] == "Disease"
        assert content["sourceId"] == "doid:162"
        assert content["source"] == rid(1)
        assert content["deprecated"] is False
        assert content["displayName"] == "cancer"
        assert content["createdBy"] == rid(900)
        assert content["updatedBy"] == rid(900)
        assert content["createdAt"] > 0

    @pytest.mark.asyncio
    async def test_given_display_name_is_kept(self, schema, session, admin_user):
        session.responses = [[], [CREATED]]

        await create(session, schema, "Disease", {
            "sourceId": "a", "source": rid(1), "displayName": "Custom",
        }, admin_user)

        assert session.queries[1][1]["content"]["displayName"] == "Custom"

    @pytest.mark.asyncio
    async def test_db_attributes_are_ignored(self, schema, session, admin_user):
        session.responses = [[], [CREATED]]

        await create(session, schema, "Disease", {
            "@rid": rid(5), "sourceId": "a", "source": rid(1), "out_AliasOf": [],
        }, admin_user)

        assert session.queries[1][1]["content"]["@rid"] != rid(5)

    @pytest.mark.asyncio
    async def test_active_index_conflict(self, schema, session, admin_user, record_factory):
        session.responses = [[record_factory(5)]]

        with pytest.raises(RecordConflictError, match="unique constraint \\(Disease.active\\)") as excinfo:
            await create(session, schema, "Disease", {"sourceId": "term5", "source": rid(1)}, admin_user)

        assert excinfo.value.sql.startswith("MATCH (n0:Disease)")
        assert len(session.queries) == 1

    @pytest.mark.asyncio
    async def test_statement_adds_subject_to_conditions(self, schema, session, admin_user, record_factory):
        session.responses = [
            [
                record_factory(1, "CategoryVariant"),
                record_factory(2, "Disease"),
                record_factory(3, "Vocabulary", name="diagnostic indicator"),
                record_factory(4, "Publication"),
            ],
            [{"@rid": rid(999), "@class": "Statement"}],
        ]

        await create(session, schema, "Statement", {
            "conditions": [rid(1)],
            "subject": rid(2),
            "relevance": rid(3),
            "evidence": [rid(4)],
        }, admin_user)

        lookup, insert = session.queries
        assert lookup[1] == {"param0": [rid(1), rid(2), rid(4), rid(3)]}

        content = insert[1]["content"]
        assert content["conditions"] == [rid(1), rid(2)]
        assert content["displayNameTemplate"] == "{conditions:variant} is a {relevance} of {subject} ({evidence})"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("model_name,message", [
        ("Ontology", "abstract"),
        ("ProteinPosition", "embedded"),
    ])
    async def test_class_without_records(self, schema, session, admin_user, model_name, message):
        with pytest.raises(ValidationError, match=message):
            await create(session, schema, model_name, {}, admin_user)

    @pytest.mark.asyncio
    async def test_requires_user(self, schema, session):
        with pytest.raises(ValidationError, match="user creating the record"):
            await create(session, schema, "Disease", {"sourceId": "a", "source": rid(1)}, {})

    @pytest.mark.asyncio
    async def test_insert_without_result(self, schema, session, admin_user):
        with pytest.raises(DatabaseRequestError, match="Failed to create"):
            await create(session, schema, "Disease", {"sourceId": "a", "source": rid(1)}, admin_user)


class TestCreateEdge:
    """Test creating edges between vertices."""

    @pytest.mark.asyncio
    async def test_create_edge(self, schema, session, admin_user, record_factory):
        created = {"@rid": rid(999), "out": rid(1), "in": rid(2)}
        session.responses = [[record_factory(1), record_factory(2)], [created]]

        result = await create(session, schema, "AliasOf", {"out": rid(1), "in": {"@rid": rid(2)}}, admin_user)

        assert result == created
        statement, params = session.queries[1]
        assert statement == (
            "MATCH (s:V), (t:V) WHERE s.`@rid` = $source AND t.`@rid` = $target "
            "CREATE (s)-[r:AliasOf $content]->(t) "
            "RETURN r {.*, out: s.`@rid`, `in`: t.`@rid`} AS record"
        )
        assert params["source"] == rid(1)
        assert params["target"] == rid(2)
        assert "out" not in params["content"]
        assert "in" not in params["content"]
        assert params["content"]["createdBy"] == rid(900)

    @pytest.mark.asyncio
    async def test_self_loop(self, schema, session, admin_user):
        with pytest.raises(ValidationError, match="relate a node/vertex to itself"):
            await create(session, schema, "AliasOf", {"out": rid(1), "in": rid(1)}, admin_user)
        assert session.queries == []

    @pytest.mark.asyncio
    async def test_missing_endpoint(self, schema, session, admin_user, record_factory):
        session.responses = [[record_factory(1)]]
        with pytest.raises(NoRecordFoundError):
            await create(session, schema, "AliasOf", {"out": rid(1), "in": rid(2)}, admin_user)

    @pytest.mark.asyncio
    async def test_insufficient_permissions(self, schema, session, readonly_user, record_factory):
        session.responses = [[record_factory(1), record_factory(2, "Therapy")]]

        with pytest.raises(PermissionDeniedError, match="link records of types \\(Disease, Therapy\\)"):
            await create(session, schema, "AliasOf", {"out": rid(1), "in": rid(2)}, readonly_user)

    @pytest.mark.asyncio
    async def test_endpoint_class_restrictions(self, schema, session, admin_user, record_factory):
        session.responses = [[record_factory(1), record_factory(2, "CategoryVariant")]]

        with pytest.raises(ValidationError, match="cannot be used with Infers edges"):
            await create(session, schema, "Infers", {"out": rid(1), "in": rid(2)}, admin_user)

    @pytest.mark.asyncio
    async def test_missing_endpoints(self, schema, session, admin_user):
        with pytest.raises(ValidationError, match="Missing required attribute"):
            await create(session, schema, "AliasOf", {"out": rid(1)}, admin_user)


class TestCreateUser:
    """Test creating users."""

    @pytest.mark.asyncio
    async def test_create_user(self, schema, session, record_factory):
        new_user = {"@rid": rid(999), "name": "alice", "groups": []}
        session.responses = [
            [
                record_factory(901, "UserGroup", name="admin"),
                record_factory(902, "UserGroup", name="regular"),
            ],
            [{"@rid": rid(999)}],
            [new_user],
        ]

        result = await create_user(session, schema, "alice", ["regular"], signed_license_at=123)

        assert result is new_user
        content = session.queries[1][1]["content"]
        assert content["groups"] == [rid(902)]
        assert content["name"] == "alice"
        assert content["signedLicenseAt"] == 123
        assert session.queries[2][1] == {"name": "alice"}
