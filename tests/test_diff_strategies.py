"""Tests for the three diff strategies and operation parsing."""

import sys
import os
import pytest

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tooluse.diff import (DiffHints, HunkDiffStrategy, InsertGroup, InsertGroupsStrategy,
                          SearchReplaceStrategy, insert_groups, parse_search_replace_blocks,
                          similarity)
from tooluse.models import InsertOperation, SearchReplaceOperation, parse_operations


def block(search: str, replace: str) -> str:
    return f"<<<<<<< SEARCH\n{search}\n=======\n{replace}\n>>>>>>> REPLACE"


# ============================================================
# Hunk strategy
# ============================================================

class TestHunkStrategy:

    def test_exact_window_match(self):
        result = HunkDiffStrategy().apply_diff("a\nb", block("a\nb", "A\nB"), DiffHints(1, 2))
        assert result.success
        assert result.content == "A\nB"

    def test_match_found_near_window(self):
        original = "\n".join(f"line {i}" for i in range(1, 21))
        result = HunkDiffStrategy().apply_diff(original, block("line 10", "LINE TEN"), DiffHints(8, 8))
        assert result.success
        assert "LINE TEN" in result.content
        assert "line 10\n" not in result.content

    def test_noop_diff_is_idempotent(self):
        original = "x = 1\ny = 2\n"
        strategy = HunkDiffStrategy()
        first = strategy.apply_diff(original, block("x = 1", "x = 1"), DiffHints(1, 1))
        assert first.success
        assert first.content == original
        second = strategy.apply_diff(first.content, block("x = 1", "x = 1"), DiffHints(1, 1))
        assert second.content == original

    def test_mismatch_reports_similarity(self):
        original = "def f():\n    return 1\n"
        result = HunkDiffStrategy().apply_diff(
            original, block("def g():\n    return 2", "pass"), DiffHints(1, 2))
        assert not result.success
        assert "No sufficiently similar match found" in result.error
        assert "Best Match Found" in result.error
        assert result.details["similarity"] < 1.0
        assert result.details["threshold"] == 1.0

    def test_fuzzy_threshold_accepts_close_match(self):
        original = "total = price * quantity\n"
        result = HunkDiffStrategy(fuzzy_threshold=0.8).apply_diff(
            original, block("total = price * quantty", "total = 0"), DiffHints(1, 1))
        assert result.success
        assert result.content == "total = 0\n"

    def test_multiple_blocks_all_or_nothing(self):
        original = "one\ntwo\nthree"
        diff = block("one", "ONE") + "\n" + block("missing", "X")
        result = HunkDiffStrategy().apply_diff(original, diff, DiffHints(1, 3))
        assert not result.success
        assert len(result.fail_parts) == 1
        assert "no changes were made" in result.error

    def test_multiple_blocks_success(self):
        original = "one\ntwo\nthree"
        diff = block("one", "ONE") + "\n" + block("three", "THREE")
        result = HunkDiffStrategy().apply_diff(original, diff, DiffHints(1, 3))
        assert result.success
        assert result.content == "ONE\ntwo\nTHREE"

    def test_line_numbers_are_stripped(self):
        result = HunkDiffStrategy().apply_diff(
            "a\nb", block("1 | a\n2 | b", "1 | A\n2 | b"), DiffHints(1, 2))
        assert result.success
        assert result.content == "A\nb"

    def test_replacement_reindented_to_file(self):
        original = "class A:\n        x = 1\n"
        result = HunkDiffStrategy().apply_diff(original, block("    x = 1", "    x = 2"), DiffHints(2, 2))
        assert result.success
        assert result.content == "class A:\n        x = 2\n"

    def test_empty_search_inserts_at_start_line(self):
        diff = "<<<<<<< SEARCH\n=======\nX\n>>>>>>> REPLACE"
        result = HunkDiffStrategy().apply_diff("a\nb", diff, DiffHints(2, 2))
        assert result.success
        assert result.content == "a\nX\nb"

    def test_missing_markers(self):
        result = HunkDiffStrategy().apply_diff("a", "just text", DiffHints(1, 1))
        assert not result.success
        assert "SEARCH/REPLACE" in result.error

    def test_crlf_preserved(self):
        result = HunkDiffStrategy().apply_diff("a\r\nb\r\n", block("a", "A"), DiffHints(1, 1))
        assert result.success
        assert result.content == "A\r\nb\r\n"

    def test_similarity_ignores_whitespace(self):
        assert similarity("  x  =  1 ", "x = 1") == 1.0
        assert similarity("", "x") == 0.0

    def test_similarity_keeps_line_breaks(self):
        assert similarity("foo bar", "foo\nbar") < 1.0
        assert similarity("foo\n  bar", "foo\nbar") == 1.0

    def test_joined_lines_do_not_match_split_search(self):
        result = HunkDiffStrategy().apply_diff(
            "foo bar\n\nbaz", block("foo\nbar", "X\nY"), DiffHints(1, 2))
        assert not result.success
        assert "No sufficiently similar match found" in result.error

    def test_parse_blocks(self):
        blocks = parse_search_replace_blocks(block("a", "b") + "\n" + block("c", "d"))
        assert blocks == [("a", "b"), ("c", "d")]


# ============================================================
# Search-and-replace strategy
# ============================================================

def op(**kwargs) -> SearchReplaceOperation:
    return SearchReplaceOperation(**kwargs)


class TestSearchReplaceStrategy:

    def test_literal_replace(self):
        result = SearchReplaceStrategy().apply_diff("foo\nbaz", [op(search="foo", replace="bar")])
        assert result.success
        assert result.content == "bar\nbaz"

    def test_replaces_all_occurrences_by_default(self):
        result = SearchReplaceStrategy().apply_diff("a a a", [op(search="a", replace="b")])
        assert result.content == "b b b"

    def test_range_confines_replacement(self):
        result = SearchReplaceStrategy().apply_diff(
            "foo\nfoo\nfoo", [op(search="foo", replace="bar", start_line=2, end_line=2)])
        assert result.content == "foo\nbar\nfoo"

    def test_range_enables_multiline_anchors(self):
        result = SearchReplaceStrategy().apply_diff(
            "foo\nfoo\nfoo",
            [op(search="^foo$", replace="bar", use_regex=True, start_line=2, end_line=3)])
        assert result.content == "foo\nbar\nbar"

    def test_literal_search_escapes_metacharacters(self):
        result = SearchReplaceStrategy().apply_diff("axb a.b", [op(search="a.b", replace="X")])
        assert result.content == "axb X"

    def test_literal_replace_keeps_dollar_signs(self):
        result = SearchReplaceStrategy().apply_diff("price", [op(search="price", replace="$1.00")])
        assert result.content == "$1.00"

    def test_js_style_group_references(self):
        result = SearchReplaceStrategy().apply_diff(
            "user@host", [op(search=r"(\w+)@(\w+)", replace="$2 at $1", use_regex=True)])
        assert result.content == "host at user"

    def test_named_group_and_whole_match(self):
        result = SearchReplaceStrategy().apply_diff(
            "v=3", [op(search=r"(?P<n>\d)", replace="[$<n>|$&]", use_regex=True)])
        assert result.content == "v=[3|3]"

    def test_ignore_case(self):
        result = SearchReplaceStrategy().apply_diff("FOO foo", [op(search="foo", replace="x", ignore_case=True)])
        assert result.content == "x x"

    def test_flags_without_g_replace_first_only(self):
        result = SearchReplaceStrategy().apply_diff(
            "a a", [op(search="a", replace="b", use_regex=True, regex_flags="i")])
        assert result.content == "b a"

    def test_operations_apply_in_order(self):
        result = SearchReplaceStrategy().apply_diff(
            "one", [op(search="one", replace="two"), op(search="two", replace="three")])
        assert result.content == "three"

    def test_invalid_regex_is_failure(self):
        result = SearchReplaceStrategy().apply_diff("x", [op(search="(", replace="", use_regex=True)])
        assert not result.success
        assert "invalid search pattern" in result.error

    def test_one_bad_operation_fails_all(self):
        result = SearchReplaceStrategy().apply_diff(
            "x", [op(search="x", replace="y"), op(search="[", replace="", use_regex=True)])
        assert not result.success
        assert len(result.fail_parts) == 1

    def test_range_beyond_file(self):
        result = SearchReplaceStrategy().apply_diff("a\nb", [op(search="a", replace="b", start_line=5)])
        assert not result.success
        assert "beyond the end" in result.error


# ============================================================
# Insert-groups strategy
# ============================================================

class TestInsertGroups:

    def test_single_insert(self):
        result = InsertGroupsStrategy().apply_diff("L1\nL2", [InsertOperation(start_line=2, content="X")])
        assert result.content == "L1\nX\nL2"

    def test_insertions_do_not_shift_later_targets(self):
        ops = [InsertOperation(start_line=1, content="A"), InsertOperation(start_line=3, content="B")]
        result = InsertGroupsStrategy().apply_diff("1\n2\n3", ops)
        assert result.content == "A\n1\n2\nB\n3"

    def test_zero_appends_before_trailing_newline(self):
        result = InsertGroupsStrategy().apply_diff("a\nb\n", [InsertOperation(start_line=0, content="c")])
        assert result.content == "a\nb\nc\n"

    def test_multiline_content(self):
        result = InsertGroupsStrategy().apply_diff("a", [InsertOperation(start_line=1, content="x\ny")])
        assert result.content == "x\ny\na"

    def test_same_index_keeps_given_order(self):
        out = insert_groups(["a"], [InsertGroup(0, ["1"]), InsertGroup(0, ["2"])])
        assert out == ["1", "2", "a"]

    def test_out_of_range_index_appends(self):
        assert insert_groups(["a"], [InsertGroup(9, ["z"])]) == ["a", "z"]


# ============================================================
# Operation payload validation
# ============================================================

class TestParseOperations:

    def test_valid(self):
        ops = parse_operations('[{"search": "a", "replace": "b"}]', SearchReplaceOperation)
        assert ops[0].search == "a"
        assert not ops[0].has_range

    def test_malformed_json(self):
        with pytest.raises(ValueError, match="Invalid JSON"):
            parse_operations("[{", SearchReplaceOperation)

    def test_not_an_array(self):
        with pytest.raises(ValueError, match="array"):
            parse_operations('{"search": "a"}', SearchReplaceOperation)

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError, match="start_line cannot be greater"):
            parse_operations('[{"search": "a", "replace": "b", "start_line": 3, "end_line": 1}]',
                             SearchReplaceOperation)

    def test_strict_types(self):
        with pytest.raises(ValueError):
            parse_operations('[{"start_line": "2", "content": "x"}]', InsertOperation)

    def test_negative_insert_line_rejected(self):
        with pytest.raises(ValueError):
            parse_operations('[{"start_line": -1, "content": "x"}]', InsertOperation)
