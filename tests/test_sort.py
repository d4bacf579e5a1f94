"""Tests for the stable multi-column sort and Stage 2 helpers."""

# pylint: disable=missing-class-docstring,missing-function-docstring

import io
import random

import pytest

from tsvreport import build_table, describe_sort, middle_row_index, sort_table


def table_from(rows, header=("k1", "k2", "pos")):
    lines = ["\t".join(header)] + ["\t".join(row) for row in rows]
    return build_table(io.StringIO("\n".join(lines) + "\n"), max_rows=0)


def sorted_rows(table):
    return [table.row(i) for i in range(1, table.row_count + 1)]


class TestOrder:

    def test_single_key(self):
        table = sort_table(table_from([("b", "", "1"), ("c", "", "2"), ("a", "", "3")]), [0])
        assert [row[0] for row in sorted_rows(table)] == ["a", "b", "c"]

    def test_second_key_breaks_ties(self):
        rows = [("b", "2", "1"), ("a", "9", "2"), ("b", "1", "3"), ("a", "0", "4")]
        table = sort_table(table_from(rows), [0, 1])
        assert [row[2] for row in sorted_rows(table)] == ["4", "2", "3", "1"]

    def test_key_priority_follows_argument_order(self):
        rows = [("b", "1", "1"), ("a", "2", "2"), ("a", "1", "3")]
        table = sort_table(table_from(rows), [1, 0])
        assert [row[2] for row in sorted_rows(table)] == ["3", "1", "2"]

    def test_ordinal_comparison(self):
        rows = [(value, "", str(i)) for i, value in enumerate(["b", "B", "a", "", " ", "10", "9"])]
        table = sort_table(table_from(rows), [0])
        assert [row[0] for row in sorted_rows(table)] == ["", " ", "10", "9", "B", "a", "b"]

    def test_header_never_moves(self):
        table = sort_table(table_from([("z", "", "1"), ("a", "", "2")], header=("~", "", "")), [0])
        assert table.row(0) == ["~", "", ""]
        assert table.row(1)[0] == "a"

    def test_no_data_rows(self):
        table = sort_table(table_from([]), [0, 1])
        assert table.row_count == 0

    def test_no_keys_leaves_order(self):
        rows = [("b", "", "1"), ("a", "", "2")]
        table = sort_table(table_from(rows), [])
        assert [row[0] for row in sorted_rows(table)] == ["b", "a"]


class TestStability:

    def test_equal_keys_keep_input_order(self):
        rows = [("x", "1", "1"), ("y", "1", "2"), ("x", "1", "3"), ("x", "0", "4"), ("x", "1", "5")]
        table = sort_table(table_from(rows), [0, 1])
        assert [row[2] for row in sorted_rows(table)] == ["4", "1", "3", "5", "2"]

    @pytest.mark.parametrize("seed", range(5))
    @pytest.mark.parametrize("keys", [[0], [1], [0, 1], [1, 0]])
    def test_random_rows(self, seed, keys):
        rng = random.Random(seed)
        rows = [(rng.choice("abc"), rng.choice(["", "x", "xy"]), f"{i:03d}") for i in range(60)]
        table = sort_table(table_from(rows), keys)
        result = sorted_rows(table)

        for before, after in zip(result, result[1:]):
            key_before = [before[k] for k in keys]
            key_after = [after[k] for k in keys]
            assert key_before <= key_after
            if key_before == key_after:
                assert before[2] < after[2]
        assert sorted(row[2] for row in result) == [f"{i:03d}" for i in range(60)]


class TestStageTwoHelpers:

    @pytest.mark.parametrize("table_rows,expected", [(2, 1), (3, 1), (4, 2), (5, 2), (6, 3), (11, 5)])
    def test_middle_row_index(self, table_rows, expected):
        assert middle_row_index(table_rows) == expected

    def test_describe_single_key(self):
        assert describe_sort(["Year", "Make"], [1]) == ['sorting by "Make"']

    def test_then_by_lines_are_indented_three_spaces(self):
        assert describe_sort(["Year", "Make"], [0, 1])[1] == '   then by "Make"'

    def test_describe_several_keys(self):
        assert describe_sort(["Year", "Make", "Model"], [0, 2, 1]) == [
            'sorting by "Year",',
            '   then by "Model",',
            '   then by "Make"',
        ]
