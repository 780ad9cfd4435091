"""Tests for contentloom.content.parser."""

from __future__ import annotations

import pytest

from contentloom.content.parser import ContentParseError, parse_content, serialize_content


class TestParseMarkdown:
    def test_front_matter_and_body(self) -> None:
        text = "---\ntitle: Hi\ntags: [a, b]\n---\n\nBody text\n"
        assert parse_content(text, "md", body_field="body") == {
            "title": "Hi",
            "tags": ["a", "b"],
            "body": "Body text",
        }

    def test_body_dropped_without_body_field(self) -> None:
        assert parse_content("---\ntitle: Hi\n---\nBody\n", "md") == {"title": "Hi"}

    def test_no_front_matter(self) -> None:
        assert parse_content("Just text\n", "mdx", body_field="body") == {"body": "Just text"}

    def test_dates_become_iso_strings(self) -> None:
        data = parse_content("---\ndate: 2024-01-02\n---\n", "md")
        assert data == {"date": "2024-01-02"}

    def test_front_matter_must_be_mapping(self) -> None:
        with pytest.raises(ContentParseError, match="mapping"):
            parse_content("---\n- a\n- b\n---\n", "md")


class TestParseDataFormats:
    def test_json(self) -> None:
        assert parse_content('{"title": "Hi"}', "json") == {"title": "Hi"}

    def test_empty_json(self) -> None:
        assert parse_content("  ", "json") == {}

    def test_yaml(self) -> None:
        assert parse_content("title: Hi\n", "yml") == {"title": "Hi"}

    def test_toml(self) -> None:
        assert parse_content('title = "Hi"\n[meta]\nviews = 3\n', "toml") == {
            "title": "Hi",
            "meta": {"views": 3},
        }

    def test_invalid_json(self) -> None:
        with pytest.raises(ContentParseError):
            parse_content("{nope", "json")

    def test_top_level_list_rejected(self) -> None:
        with pytest.raises(ContentParseError, match="expected a mapping"):
            parse_content("[1, 2]", "json")

    def test_unsupported_format(self) -> None:
        with pytest.raises(ContentParseError, match="unsupported"):
            parse_content("", "txt")


class TestSerialize:
    def test_markdown_puts_body_after_front_matter(self) -> None:
        text = serialize_content({"title": "Hi", "body": "Hello"}, "md", body_field="body")
        assert text == "---\ntitle: Hi\n---\n\nHello\n"
        assert parse_content(text, "md", body_field="body") == {"title": "Hi", "body": "Hello"}

    def test_toml_skips_none(self) -> None:
        assert serialize_content({"title": "Hi", "draft": None}, "toml") == 'title = "Hi"\n'

    def test_json(self) -> None:
        assert serialize_content({"a": 1}, "json") == '{\n  "a": 1\n}\n'
