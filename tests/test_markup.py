from __future__ import annotations

from docpress.markup import asset_key, iter_tags, mask_code, resolve_document_link, split_target


def test_mask_code_blanks_fences_and_inline_code() -> None:
    body = "before `<div>` after\n```html\n<div>\n```\n\n    <span>\n\nend"
    scan = mask_code(body)
    lines = scan.masked.split("\n")
    assert len(lines) == len(body.split("\n"))
    assert "<div>" not in scan.masked
    assert "<span>" not in scan.masked
    assert lines[0].startswith("before ") and lines[0].endswith(" after")
    assert lines[-1] == "end"
    assert scan.unclosed_line is None


def test_mask_code_reports_unclosed_fence() -> None:
    scan = mask_code("intro\n\n~~~~python\ncode\n~~~\n")
    assert scan.unclosed_line == 2
    assert scan.unclosed_fence == "~~~~"


def test_closing_fence_must_repeat_the_opener() -> None:
    assert mask_code("````\n```\n````").unclosed_line is None
    assert mask_code("```\n~~~\n").unclosed_line == 0


def test_iter_tags_skips_autolinks_and_script_bodies() -> None:
    text = '<https://example.com> <div class="a"><script>if (a < b) {}</script></div>'
    names = [(tag.name, tag.closing) for tag in iter_tags(text)]
    assert names == [("div", False), ("script", False), ("script", True), ("div", True)]


def test_split_target_drops_query_and_keeps_fragment() -> None:
    assert split_target("/assets/a%20b.png?v=2#top") == ("/assets/a b.png", "#top")


def test_asset_key_resolution() -> None:
    assert asset_key("/assets/x.png") == "assets/x.png"
    assert asset_key("assets/x.png") == "assets/x.png"
    assert asset_key("assets/x.png", page_relative=True) == "posts/assets/x.png"
    assert asset_key("./x.png") == "posts/x.png"
    assert asset_key("../assets/x.png") == "assets/x.png"
    assert asset_key("../../etc/passwd") is None
    assert asset_key("/") == ""
    assert asset_key("/docs/") == "docs/"


def test_resolve_document_link() -> None:
    assert resolve_document_link("2026/a.md", "b.md") == "2026/b.md"
    assert resolve_document_link("2026/a.md", "../c.md") == "c.md"
    assert resolve_document_link("2026/a.md", "/2025/d.md") == "2025/d.md"
    assert resolve_document_link("a.md", "../outside.md") is None
