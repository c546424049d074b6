"""Tests for the relaxed-JSON comment and trailing-comma stripper."""

import json

import pytest

from monarch_grid import relaxed_json


class TestStripComments:
    """Comment removal outside string literals."""

    def test_line_and_block_comments_removed(self):
        text = '{\n  "a": 1, // one\n  /* two\n  lines */ "b": 2\n}'
        assert relaxed_json.loads(text) == {"a": 1, "b": 2}

    def test_comment_markers_inside_strings_kept(self):
        assert relaxed_json.loads('{"pattern": "/* kept */"}') == {"pattern": "/* kept */"}
        assert relaxed_json.loads('{"url": "http://host/a"}') == {"url": "http://host/a"}

    def test_escaped_quote_does_not_end_string(self):
        text = r'{"s": "say \"hi\" // not a comment"}'
        assert relaxed_json.loads(text) == {"s": 'say "hi" // not a comment'}

    def test_comment_at_end_of_input(self):
        assert relaxed_json.strip_comments("[1] // done") == "[1] "


class TestStripTrailingCommas:
    """Trailing commas before closing brackets."""

    def test_array_trailing_comma(self):
        assert relaxed_json.loads("[1, 2, ]") == [1, 2]

    def test_object_trailing_comma_across_newlines(self):
        assert relaxed_json.loads('{"a": 1,\n\n}') == {"a": 1}

    def test_comment_between_value_and_trailing_comma(self):
        assert relaxed_json.loads('{"key": "value" /* c */,}') == {"key": "value"}

    def test_inner_commas_untouched(self):
        assert relaxed_json.strip_trailing_commas('[1, 2, 3]') == "[1, 2, 3]"

    def test_commas_inside_strings_untouched(self):
        assert relaxed_json.loads('["a, ]", "b,}" ,]') == ["a, ]", "b,}"]


@pytest.mark.parametrize(
    "document",
    [
        {"title": "x", "list": [1, 2.5, None, True], "nested": {"k": "v"}},
        ["//", "/*", "*/", ",]", ",}"],
        {"empty": {}, "arr": []},
    ],
)
def test_clean_json_is_unchanged(document):
    text = json.dumps(document)
    assert relaxed_json.to_strict_json(text) == text
    assert relaxed_json.loads(text) == document


def test_invalid_json_still_raises():
    with pytest.raises(json.JSONDecodeError):
        relaxed_json.loads("{'single': 'quotes'}")


def test_bytes_with_bom_accepted():
    assert relaxed_json.loads("\ufeff{\"a\": 1,}".encode("utf-8")) == {"a": 1}
