#!/usr/bin/env python3
"""
Tests for class and record level access checks.
"""

from graphkb.models import Permission
from graphkb.repo.permissions import check_user_access_for, has_record_access, trim_records

from conftest import make_user, rid


class TestClassAccess:
    """Test permission bits granted through user groups."""

    def test_admin_can_create(self, admin_user):
        assert check_user_access_for(admin_user, "Disease", Permission.CREATE)

    def test_readonly_cannot_create(self, readonly_user):
        assert check_user_access_for(readonly_user, "Disease", Permission.READ)
        assert not check_user_access_for(readonly_user, "Disease", Permission.CREATE)

    def test_any_group_grants(self):
        user = make_user("mixed", {"Disease": int(Permission.READ)})
        user["groups"].append({"@rid": rid(902), "permissions": {"Disease": int(Permission.UPDATE)}})
        assert check_user_access_for(user, "Disease", Permission.UPDATE)

    def test_unexpanded_groups_grant_nothing(self):
        user = {"@rid": rid(900), "groups": [rid(901)]}
        assert not check_user_access_for(user, "Disease", Permission.READ)


class TestRecordAccess:
    """Test group restrictions on individual records."""

    def test_unrestricted(self, admin_user):
        assert has_record_access(admin_user, {"@rid": rid(1)})

    def test_restricted_to_user_group(self, admin_user):
        assert has_record_access(admin_user, {"@rid": rid(1), "groupRestrictions": [{"@rid": rid(901)}]})

    def test_restricted_to_other_group(self, admin_user):
        assert not has_record_access(admin_user, {"@rid": rid(1), "groupRestrictions": [rid(50)]})


class TestTrimRecords:
    """Test removal of unreadable records from selection results."""

    def test_without_user_keeps_active_records(self, record_factory):
        records = [record_factory(1), record_factory(2, deletedAt=5)]
        assert trim_records(records) == [records[0]]

    def test_history_keeps_deleted_records(self, record_factory):
        records = [record_factory(1), record_factory(2, deletedAt=5)]
        assert len(trim_records(records, history=True)) == 2

    def test_class_permissions(self, readonly_user, record_factory):
        user = make_user("partial", {"Disease": int(Permission.READ)})
        records = [record_factory(1), record_factory(2, "Therapy")]

        assert trim_records(records, user=user) == [records[0]]
        assert len(trim_records(records, user=readonly_user)) == 2

    def test_group_restrictions(self, readonly_user, record_factory):
        records = [
            record_factory(1, groupRestrictions=[rid(911)]),
            record_factory(2, groupRestrictions=[rid(50)]),
        ]
        result = trim_records(records, user=readonly_user)
        assert [record["@rid"] for record in result] == [rid(1)]

    def test_nested_links(self, readonly_user, record_factory):
        record = record_factory(
            1,
            source={"@rid": rid(2), "@class": "Source", "name": "doid", "deletedAt": 10},
            dependency={"@rid": rid(3), "@class": "Disease", "groupRestrictions": [rid(50)]},
            createdBy={"@rid": rid(900), "@class": "User", "name": "admin"},
        )

        [result] = trim_records([record], user=readonly_user)

        assert "source" not in result
        assert "dependency" not in result
        assert result["createdBy"]["name"] == "admin"

    def test_nested_lists(self, readonly_user, record_factory):
        record = record_factory(1, "Statement", conditions=[
            {"@rid": rid(2), "@class": "Disease"},
            {"@rid": rid(3), "@class": "Disease", "deletedAt": 4},
        ])

        [result] = trim_records([record], user=readonly_user)
        assert [condition["@rid"] for condition in result["conditions"]] == [rid(2)]

    def test_history_links(self, record_factory):
        nested = record_factory(2, history={"@rid": rid(5), "@class": "Disease"})
        record = record_factory(1, history={"@rid": rid(4), "@class": "Disease"}, dependency=nested)

        [result] = trim_records([record])

        assert result["history"] == rid(4)
        assert "history" not in result["dependency"]

    def test_edge_lists(self, record_factory):
        user = make_user("partial", {"Disease": int(Permission.READ), "SubClassOf": int(Permission.READ)})
        record = record_factory(
            1,
            out_AliasOf=[{"@rid": rid(10), "@class": "AliasOf", "in": rid(2)}],
            in_SubClassOf=[{"@rid": rid(11), "@class": "SubClassOf", "out": rid(3)}],
        )

        [result] = trim_records([record], user=user)

        assert "out_AliasOf" not in result
        assert [edge["@rid"] for edge in result["in_SubClassOf"]] == [rid(11)]
