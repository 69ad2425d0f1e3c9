#!/usr/bin/env python3
"""
Tests for the query compiler.

This module tests:
- Standard option casting and validation
- Filter parsing (operators, clauses, nested subqueries)
- Paging, ordering, counting and projections of the compiled statement
- Queries built from record content
"""

import pytest

from graphkb.database.base import ValidationError
from graphkb.repo.query_builder import check_standard_options, parse, parse_record

from conftest import rid

SUFFIX = " WITH n0 LIMIT 1000 RETURN n0 {.*} AS record"


def compile_query(schema, opt):
    return parse(schema, opt).to_cypher()


class TestStandardOptions:
    """Test casting of paging and output options."""

    def test_cast_all_options(self):
        options = check_standard_options({
            "limit": "10",
            "skip": "2",
            "orderBy": "name, sourceId",
            "orderByDirection": "desc",
            "returnProperties": "name",
            "history": "t",
            "count": "false",
        })

        assert options["limit"] == 10
        assert options["skip"] == 2
        assert options["orderBy"] == ["name", "sourceId"]
        assert options["orderByDirection"] == "DESC"
        assert options["returnProperties"] == ["name"]
        assert options["history"] is True
        assert options["count"] is False

    @pytest.mark.parametrize("opt", [
        {"limit": 0},
        {"limit": 1001},
        {"limit": "abc"},
        {"skip": -1},
        {"neighbors": 5},
        {"orderByDirection": "up"},
        {"history": "maybe"},
    ])
    def test_bad_options(self, opt):
        with pytest.raises(ValidationError):
            check_standard_options(opt)


class TestFilters:
    """Test compilation of filter comparisons and clauses."""

    def test_single_comparison(self, schema):
        statement, params = compile_query(schema, {"target": "Disease", "filters": {"name": "Cancer"}})

        assert statement == "MATCH (n0:Disease) WHERE n0.name = $param0 AND n0.deletedAt IS NULL" + SUFFIX
        assert params == {"param0": "cancer"}

    def test_or_clause_is_grouped(self, schema):
        statement, params = compile_query(schema, {
            "target": "Disease",
            "filters": {"OR": [{"name": "cancer"}, {"sourceId": "DOID:162"}]},
        })

        assert statement == (
            "MATCH (n0:Disease) WHERE (n0.name = $param0 OR n0.sourceId = $param1) "
            "AND n0.deletedAt IS NULL" + SUFFIX
        )
        assert params == {"param0": "cancer", "param1": "doid:162"}

    def test_nested_clause_with_history(self, schema):
        statement, _ = compile_query(schema, {
            "target": "Disease",
            "history": True,
            "filters": {"AND": [{"name": "a"}, {"OR": [{"sourceId": "b"}, {"sourceId": "c"}]}]},
        })

        assert statement == (
            "MATCH (n0:Disease) WHERE n0.name = $param0 AND "
            "(n0.sourceId = $param1 OR n0.sourceId = $param2)" + SUFFIX
        )

    def test_filter_list_is_and(self, schema):
        statement, _ = compile_query(schema, {
            "target": "Disease",
            "filters": [{"name": "a"}, {"sourceId": "b"}],
        })
        assert "(n0.name = $param0 AND n0.sourceId = $param1)" in statement

    def test_linkset_list_defaults_to_equality(self, schema):
        statement, params = compile_query(schema, {
            "target": "Statement",
            "filters": {"conditions": [rid(1), rid(2)]},
        })

        assert statement == (
            "MATCH (n0:Statement) WHERE (all(x1 IN $param0 WHERE x1 IN n0.conditions) "
            "AND size(n0.conditions) = size($param0)) AND n0.deletedAt IS NULL" + SUFFIX
        )
        assert params == {"param0": [rid(1), rid(2)]}

    def test_linkset_scalar_defaults_to_contains(self, schema):
        statement, params = compile_query(schema, {
            "target": "Statement",
            "filters": {"conditions": {"@rid": rid(1)}},
        })

        assert "WHERE $param0 IN n0.conditions AND" in statement
        assert params == {"param0": rid(1)}

    def test_containsany(self, schema):
        statement, _ = compile_query(schema, {
            "target": "Statement",
            "filters": {"conditions": [rid(1)], "operator": "CONTAINSANY"},
        })
        assert "WHERE any(x1 IN $param0 WHERE x1 IN n0.conditions) AND" in statement

    def test_list_value_defaults_to_in(self, schema):
        statement, params = compile_query(schema, {
            "target": "Disease",
            "filters": {"sourceId": ["A", "b"]},
        })

        assert "WHERE n0.sourceId IN $param0 AND" in statement
        assert params == {"param0": ["a", "b"]}

    def test_subquery_value(self, schema):
        statement, params = compile_query(schema, {
            "target": "Statement",
            "filters": {"subject": {"target": "Disease", "filters": {"name": "cancer"}}},
        })

        assert statement == (
            "MATCH (n0:Statement) WHERE n0.subject IN COLLECT { MATCH (n1:Disease) "
            "WHERE n1.name = $param0 AND n1.deletedAt IS NULL RETURN n1.`@rid` } "
            "AND n0.deletedAt IS NULL" + SUFFIX
        )
        assert params == {"param0": "cancer"}

    def test_length_comparison(self, schema):
        statement, params = compile_query(schema, {
            "target": "Statement",
            "filters": {"conditions.length": 2, "operator": ">"},
        })

        assert "WHERE size(n0.conditions) > $param0 AND" in statement
        assert params == {"param0": 2}

    def test_length_requires_iterable(self, schema):
        with pytest.raises(ValidationError, match="iterable"):
            parse(schema, {"target": "Disease", "filters": {"name.length": 2}})

    def test_negate(self, schema):
        statement, _ = compile_query(schema, {"target": "Disease", "filters": {"name": "cancer", "negate": True}})
        assert "WHERE NOT (n0.name = $param0) AND" in statement

    def test_instanceof(self, schema):
        statement, params = compile_query(schema, {
            "target": "Ontology",
            "filters": {"@this": "Disease", "operator": "INSTANCEOF"},
        })

        assert statement.startswith("MATCH (n0:Ontology) WHERE n0.`@class` IN $param0 AND")
        assert params == {"param0": ["Disease"]}

    def test_null_comparison(self, schema):
        statement, params = compile_query(schema, {"target": "Disease", "filters": {"dependency": None}})

        assert "WHERE n0.dependency IS NULL AND" in statement
        assert params == {}

    def test_record_ids_target(self, schema):
        query = parse(schema, {"target": [rid(1), rid(2).upper()], "limit": None})
        statement, params = query.to_cypher()

        assert statement == (
            "MATCH (n0:V) WHERE n0.`@rid` IN $param0 AND n0.deletedAt IS NULL RETURN n0 {.*} AS record"
        )
        assert params == {"param0": [rid(1), rid(2)]}
        assert query.expected_count() == 2

    def test_edge_target_returns_endpoints(self, schema):
        statement, _ = compile_query(schema, {"target": "AliasOf"})

        assert statement == (
            "MATCH ()-[n0:AliasOf]->() WHERE n0.deletedAt IS NULL WITH n0 LIMIT 1000 "
            "RETURN n0 {.*, out: startNode(n0).`@rid`, `in`: endNode(n0).`@rid`} AS record"
        )

    def test_edge_endpoint_filter_uses_edge_query(self, schema):
        statement, params = compile_query(schema, {"target": "AliasOf", "filters": {"out": rid(1)}})

        assert statement == (
            "MATCH (n0:V) WHERE n0.`@rid` IN $param0 "
            "MATCH (n0)-[n1:AliasOf]->() WITH DISTINCT n1 WHERE n1.deletedAt IS NULL "
            "WITH DISTINCT n1 AS n2 WHERE startNode(n2).`@rid` = $param1 AND n2.deletedAt IS NULL "
            "WITH n2 LIMIT 1000 "
            "RETURN n2 {.*, out: startNode(n2).`@rid`, `in`: endNode(n2).`@rid`} AS record"
        )
        assert params == {"param0": [rid(1)], "param1": rid(1)}

    def test_display_string(self, schema):
        query = parse(schema, {"target": "Disease", "filters": {"name": "cancer"}})
        assert query.display_string() == (
            "MATCH (n0:Disease) WHERE n0.name = 'cancer' AND n0.deletedAt IS NULL" + SUFFIX
        )


class TestFilterErrors:
    """Test rejection of malformed query descriptions."""

    @pytest.mark.parametrize("opt,message", [
        ({"target": "Disease", "filters": {"colour": "red"}}, "does not exist"),
        ({"target": "Disease", "filters": {"name": "a", "operator": "CONTAINS"}}, "CONTAINS can only be used"),
        ({"target": "Disease", "filters": {"name": ["a"], "operator": ">"}}, "Non-equality operator"),
        ({"target": "Disease", "filters": {"name": "a", "operator": "LIKE"}}, "Invalid operator"),
        ({"target": "Disease", "filters": {"name": "a", "operator": "IS"}}, "IS operator"),
        ({"target": "Disease", "filters": {"name": "a", "sourceId": "b"}}, "single property key"),
        ({"target": "Disease", "filters": {"OR": []}}, "non-empty list"),
        ({"target": "Disease", "filters": {"@this": "Disease", "operator": "="}}, "INSTANCEOF"),
        ({"target": "Disease", "filters": {"@this": "Thing"}}, "Invalid class"),
        ({"target": "Statement", "filters": {"conditions": [rid(1)], "operator": "CONTAINS"}}, "non-iterable values"),
        ({"filters": {"name": "a"}}, "Missing required query target"),
        ({"target": "Thing"}, "Invalid target class"),
        ({"target": []}, "empty list"),
        ({"target": ["#1:2"]}, "not a valid record id"),
        ({"target": "Disease", "colour": "red"}, "Unrecognized query arguments: colour"),
        ({"target": "Disease", "orderBy": "colour"}, "does not exist"),
    ])
    def test_invalid(self, schema, opt, message):
        with pytest.raises(ValidationError, match=message):
            parse(schema, opt)


class TestWrapper:
    """Test paging, ordering, counting and projections."""

    def test_count(self, schema):
        statement, _ = compile_query(schema, {"target": "Disease", "count": True})
        assert statement == "MATCH (n0:Disease) WHERE n0.deletedAt IS NULL RETURN count(n0) AS count"

    def test_order_skip_limit(self, schema):
        statement, _ = compile_query(schema, {
            "target": "Disease",
            "orderBy": "name,sourceId",
            "orderByDirection": "desc",
            "skip": 10,
            "limit": 5,
        })

        assert statement == (
            "MATCH (n0:Disease) WHERE n0.deletedAt IS NULL WITH n0 "
            "ORDER BY n0.name DESC, n0.sourceId DESC SKIP 10 LIMIT 5 RETURN n0 {.*} AS record"
        )

    def test_order_by_linked_property(self, schema):
        statement, _ = compile_query(schema, {"target": "Disease", "orderBy": "source.name"})
        assert (
            "ORDER BY head(COLLECT { MATCH (n1:V) WHERE n1.`@rid` = n0.source RETURN n1.name }) ASC"
        ) in statement

    def test_expected_count_ignores_filtered_queries(self, schema):
        assert parse(schema, {"target": [rid(1)], "filters": {"comment": "a"}}).expected_count() is None
        assert parse(schema, {"target": [rid(1), rid(2)], "limit": 1}).expected_count() == 1
        assert parse(schema, {"target": [rid(1)], "count": True}).expected_count() is None

    def test_return_properties(self, schema):
        statement, _ = compile_query(schema, {"target": "Disease", "returnProperties": "name,source.name"})

        assert statement.endswith(
            "RETURN n0 {.name, source: head(COLLECT { MATCH (n1:Source) "
            "WHERE n1.`@rid` = n0.source RETURN n1 {.name} })} AS record"
        )

    def test_return_embedded_sub_property(self, schema):
        statement, _ = compile_query(schema, {
            "target": "PositionalVariant",
            "returnProperties": ["break1Start.pos", "displayName"],
        })
        assert statement.endswith("RETURN n0 {.`break1Start.pos`, .displayName} AS record")

    def test_return_properties_not_linked(self, schema):
        with pytest.raises(ValidationError, match="does not have a linked class"):
            parse(schema, {"target": "Disease", "returnProperties": "name.length"})

    def test_single_neighbor_level(self, schema):
        statement, _ = compile_query(schema, {"target": "Disease", "neighbors": 1})

        assert statement.endswith(
            "RETURN n0 {.*, "
            "createdBy: head(COLLECT { MATCH (n1:User) WHERE n1.`@rid` = n0.createdBy RETURN n1 {.*} }), "
            "dependency: head(COLLECT { MATCH (n2:Ontology) WHERE n2.`@rid` = n0.dependency RETURN n2 {.*} }), "
            "groupRestrictions: COLLECT { MATCH (n3:UserGroup) WHERE n3.`@rid` IN n0.groupRestrictions "
            "RETURN n3 {.*} }, "
            "source: head(COLLECT { MATCH (n4:Source) WHERE n4.`@rid` = n0.source RETURN n4 {.*} }), "
            "updatedBy: head(COLLECT { MATCH (n5:User) WHERE n5.`@rid` = n0.updatedBy RETURN n5 {.*} })"
            "} AS record"
        )

    def test_neighbor_projection_expands_edges(self, schema):
        statement, _ = compile_query(schema, {"target": "Disease", "neighbors": 2})

        assert "createdBy: head(COLLECT { MATCH (n1:User) WHERE n1.`@rid` = n0.createdBy RETURN n1 {.*} })" in statement
        assert "out_AliasOf: COLLECT { MATCH (n0)-[" in statement
        assert "in_SubClassOf: COLLECT { MATCH (n0)<-[" in statement
        assert "groupRestrictions:" not in statement
        assert "history:" not in statement


class TestParseRecord:
    """Test queries built from record content."""

    def test_active_index(self, schema):
        query = parse_record(
            schema,
            "Disease",
            {"sourceId": "DOID:1", "source": rid(1), "name": "cancer", "deprecated": False, "@rid": rid(5)},
            active_index_only=True,
        )
        statement, params = query.to_cypher()

        assert statement == (
            "MATCH (n0:Disease) WHERE (n0.deprecated = $param0 AND n0.name = $param1 "
            "AND n0.source = $param2 AND n0.sourceId = $param3 AND n0.sourceIdVersion IS NULL) "
            "AND n0.deletedAt IS NULL" + SUFFIX
        )
        assert params == {"param0": False, "param1": "cancer", "param2": rid(1), "param3": "doid:1"}

    def test_record_id_is_target(self, schema):
        statement, params = parse_record(schema, "Disease", {"@rid": rid(5), "name": "cancer"}).to_cypher()

        assert statement == (
            "MATCH (n0:Disease) WHERE n0.`@rid` IN $param0 AND n0.name = $param1 "
            "AND n0.deletedAt IS NULL" + SUFFIX
        )
        assert params == {"param0": [rid(5)], "param1": "cancer"}

    def test_embedded_content(self, schema):
        statement, params = parse_record(schema, "PositionalVariant", {
            "break1Start": {"@class": "ProteinPosition", "pos": 12},
            "reference1": {"@rid": rid(3)},
        }).to_cypher()

        assert (
            "n0.`break1Start.@class` = $param0 AND n0.`break1Start.pos` = $param1 "
            "AND n0.reference1 = $param2"
        ) in statement
        assert params == {"param0": "ProteinPosition", "param1": 12, "param2": rid(3)}
