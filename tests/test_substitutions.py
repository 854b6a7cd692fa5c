"""Tests for query template expansion."""

from __future__ import annotations

import pytest

from perfbench.benchmark.substitutions import expand, expand_queries, expand_with_parameters

pytestmark = pytest.mark.unit


class TestExpand:
    """Tests for expand()."""

    def test_cartesian_product_in_declaration_order(self):
        dims = [("a", ["1", "2"]), ("b", ["x", "y"])]
        assert expand("{a}-{b}", dims) == ["1-x", "1-y", "2-x", "2-y"]

    def test_no_dimensions_returns_template(self):
        assert expand("SELECT 1", []) == ["SELECT 1"]

    def test_unreferenced_dimension_does_not_branch(self):
        dims = [("a", ["1", "2"]), ("unused", ["p", "q", "r"])]
        assert expand("SELECT {a}", dims) == ["SELECT 1", "SELECT 2"]

    def test_referenced_empty_dimension_yields_nothing(self):
        dims = [("a", ["1", "2"]), ("b", [])]
        assert expand("{a}-{b}", dims) == []

    def test_unreferenced_empty_dimension_is_ignored(self):
        dims = [("a", ["1"]), ("b", [])]
        assert expand("{a}", dims) == ["1"]

    def test_repeated_placeholder_replaced_everywhere(self):
        dims = [("t", ["hits"])]
        assert expand("SELECT * FROM {t} JOIN {t} USING id", dims) == [
            "SELECT * FROM hits JOIN hits USING id"
        ]

    def test_result_size_is_product_of_referenced_sizes(self):
        dims = [("a", ["1", "2", "3"]), ("b", ["x", "y"]), ("c", ["k"])]
        assert len(expand("{a}{b}{c}", dims)) == 6

    def test_later_dimensions_apply_to_inserted_values(self):
        dims = [("a", ["{b}"]), ("b", ["x"])]
        assert expand("{a}", dims) == ["x"]


class TestExpandWithParameters:
    """Tests for expand_with_parameters()."""

    def test_reports_chosen_values(self):
        dims = [("table", ["hits", "visits"]), ("limit", ["10"])]
        result = expand_with_parameters("SELECT * FROM {table} LIMIT {limit}", dims)
        assert result == [
            ("SELECT * FROM hits LIMIT 10", {"table": "hits", "limit": "10"}),
            ("SELECT * FROM visits LIMIT 10", {"table": "visits", "limit": "10"}),
        ]

    def test_unreferenced_dimension_not_in_parameters(self):
        dims = [("a", ["1"]), ("b", ["x"])]
        assert expand_with_parameters("{a}", dims) == [("1", {"a": "1"})]


class TestExpandQueries:
    """Tests for expand_queries()."""

    def test_templates_expanded_in_order(self):
        dims = [("n", ["1", "2"])]
        result = expand_queries(["SELECT {n}", "SELECT -{n}", "SELECT 0"], dims)
        assert [q for q, _ in result] == [
            "SELECT 1",
            "SELECT 2",
            "SELECT -1",
            "SELECT -2",
            "SELECT 0",
        ]
        assert result[-1][1] == {}
