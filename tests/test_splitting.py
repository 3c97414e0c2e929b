"""Tests for bracket- and quote-aware splitting."""

from __future__ import annotations

import pytest

from planscope.parser.splitting import split_balanced


class TestSplitBalanced:

    def test_plain_split(self) -> None:
        assert split_balanced("a,b,c") == ["a", "b", "c"]

    def test_nested_brackets_are_kept(self) -> None:
        assert split_balanced("a(b,c),d") == ["a(b,c)", "d"]
        assert split_balanced("f([1,2],{x,y}),z") == ["f([1,2],{x,y})", "z"]

    def test_quotes_are_kept(self) -> None:
        assert split_balanced("x, 'a,b', \"c,d\"") == ["x", " 'a,b'", ' "c,d"']

    def test_brackets_inside_quotes_do_not_count(self) -> None:
        assert split_balanced("'(' , b") == ["'(' ", " b"]

    def test_parts_are_not_trimmed(self) -> None:
        assert split_balanced(" a , b ") == [" a ", " b "]

    def test_empty_parts(self) -> None:
        assert split_balanced("a,,b") == ["a", "", "b"]
        assert split_balanced("") == [""]
        assert split_balanced("a,") == ["a", ""]

    def test_escaped_delimiter(self) -> None:
        assert split_balanced(r"a\,b,c") == ["a,b", "c"]

    def test_escaped_bracket_does_not_nest(self) -> None:
        assert split_balanced(r"a\(b,c") == ["a(b", "c"]

    def test_other_backslashes_are_kept(self) -> None:
        assert split_balanced(r"a\nb,c") == [r"a\nb", "c"]

    def test_unbalanced_closer_is_ignored(self) -> None:
        assert split_balanced("a),b") == ["a)", "b"]

    def test_multi_character_delimiter(self) -> None:
        assert split_balanced("a :: b(c :: d)", " :: ") == ["a", "b(c :: d)"]

    def test_empty_delimiter_rejected(self) -> None:
        with pytest.raises(ValueError):
            split_balanced("abc", "")
