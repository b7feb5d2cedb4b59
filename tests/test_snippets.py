from __future__ import annotations

from pathlib import Path

from docpress.render import RenderOptions, render_document
from docpress.snippets import SnippetTarget, highlight_snippet, parse_snippet_target, snippet_problem

SOURCE = "int a = 1;\nint b = 2;\nint c = 3;\nint d = 4;\n"


def test_parse_snippet_target() -> None:
    assert parse_snippet_target("code:/src/fence.c#L2-L3") == SnippetTarget("/src/fence.c", 2, 3)
    assert parse_snippet_target("code:fence.c#L4") == SnippetTarget("fence.c", 4, None)
    assert parse_snippet_target("code:fence.c") == SnippetTarget("fence.c", None, None)
    assert parse_snippet_target("fence.c") is None


def test_snippet_problem(tmp_path: Path) -> None:
    path = tmp_path / "fence.c"
    path.write_text(SOURCE, encoding="utf-8")
    assert snippet_problem(SnippetTarget("fence.c", 2, 4), path) is None
    assert snippet_problem(SnippetTarget("fence.c", 3, 2), path) == "invalid line range"
    assert snippet_problem(SnippetTarget("fence.c", 5), path) == "line 5 is past the end of the file (4 lines)"
    assert snippet_problem(SnippetTarget("gone.c"), tmp_path / "gone.c") == "file not found"


def test_highlight_range_is_an_excerpt(tmp_path: Path) -> None:
    path = tmp_path / "fence.c"
    html, lang = highlight_snippet(SOURCE, path, SnippetTarget("fence.c", 2, 3))
    assert lang == "c"
    assert 'class="codehilite"' in html
    assert "b" in html and "c" in html
    assert ">a<" not in html


def test_highlight_unknown_extension_uses_plain_text(tmp_path: Path) -> None:
    _, lang = highlight_snippet("plain", tmp_path / "notes.unknownext", SnippetTarget("notes.unknownext"))
    assert lang == "text"


def test_rendered_snippet_figure(make_doc, posts_dir: Path) -> None:
    (posts_dir / "fence.c").write_text(SOURCE, encoding="utf-8")
    doc = make_doc("See [the fence](code:fence.c#L2-L3).\n")
    page = render_document(doc, RenderOptions(snippet_root=posts_dir))
    assert '<figure class="code-snippet" data-lang="c" data-line="2">' in page.content
    assert "<figcaption>the fence</figcaption>" in page.content


def test_rendered_snippet_error_span(make_doc, posts_dir: Path) -> None:
    doc = make_doc("See [missing](code:/nope.c).\n")
    page = render_document(doc, RenderOptions(snippet_root=posts_dir))
    assert '<span class="code-link-error">file not found: /nope.c</span>' in page.content
