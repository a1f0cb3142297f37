"""Tests for extension lookups and new-file templates."""

from codestudio.file_types import (
    default_content,
    extension,
    icon_for,
    language_for,
)


def test_html_template_has_doctype():
    assert "<!DOCTYPE html>" in default_content("index.html")


def test_markdown_heading_uses_base_name():
    assert default_content("notes.md").startswith("# notes\n")


def test_every_recognized_extension_has_a_template():
    for name in ("a.css", "a.js", "a.ts", "a.jsx", "a.tsx", "a.json"):
        assert not default_content(name).startswith("// a.")


def test_unrecognized_extension_gets_a_stub():
    content = default_content("script.rb")
    assert content.startswith("// script.rb\n")
    assert "Created on" in content


def test_extension_is_case_insensitive():
    assert extension("Page.HTML") == "html"
    assert extension("Makefile") == ""
    assert "<!DOCTYPE html>" in default_content("Page.HTML")


def test_languages():
    assert language_for("app.tsx") == "typescript"
    assert language_for("app.jsx") == "javascript"
    assert language_for("style.scss") == "css"
    assert language_for("README.md") == "markdown"
    assert language_for("notes.txt") == "plaintext"


def test_icons():
    assert icon_for("src", is_dir=True) == "folder"
    assert icon_for("src", is_dir=True, expanded=True) == "folder-open"
    assert icon_for("data.json") == "file-json"
    assert icon_for("photo.png") == "image"
    assert icon_for("unknown.xyz") == "file"
