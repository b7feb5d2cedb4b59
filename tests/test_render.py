from __future__ import annotations

import pytest

from docpress.errors import RenderError
from docpress.render import RenderOptions, check_markup, render_document, render_template, rewrite_url


def test_render_is_idempotent(make_doc) -> None:
    doc = make_doc(
        "---\ntitle: Virtual dispatch\n---\n## Vtables\n\nA *call* through a pointer.\n\n"
        "```cpp\nstruct A { virtual void f(); };\n```\n\n## Branch prediction\n\nText.[^1]\n\n[^1]: A citation.\n"
    )
    first = render_document(doc)
    second = render_document(doc)
    assert first == second
    assert first.content == second.content
    assert 'id="vtables"' in first.content
    assert "<li" in first.toc


def test_fenced_code_is_verbatim(make_doc) -> None:
    doc = make_doc('Intro\n\n```python\nx = a * b  # *not* emphasis\n# not a heading\n<tag> & "q"\n```\n')
    page = render_document(doc)
    assert '<code class="language-python">' in page.content
    assert 'x = a * b  # *not* emphasis\n# not a heading\n&lt;tag&gt; &amp; &quot;q&quot;\n' in page.content
    assert "<em>" not in page.content
    assert "<h1" not in page.content


def test_raw_html_passes_through_unmodified(make_doc) -> None:
    block = '<div class="note">\n*not emphasis* <img src="images/x.png">\n</div>'
    doc = make_doc(f"Intro\n\n{block}\n\nAfter\n")
    page = render_document(doc)
    assert block in page.content


def test_markdown_links_are_rewritten_to_site_root(make_doc) -> None:
    doc = make_doc(
        "![diagram](images/store-buffer.png)\n\n"
        "[abs](/assets/a.png) [rel](./local.png) [ext](https://example.com/x)\n\n"
        "[tso](2026-01-20-x86-tso.md#store-buffer)\n",
        name="2026-01-24-vtables.md",
    )
    options = RenderOptions(links={"2026-01-20-x86-tso.md": "posts/x86-tso.html"})
    page = render_document(doc, options)
    assert 'src="../images/store-buffer.png"' in page.content
    assert 'href="/assets/a.png"' in page.content
    assert 'href="./local.png"' in page.content
    assert 'href="https://example.com/x"' in page.content
    assert 'href="../posts/x86-tso.html#store-buffer"' in page.content


def test_rewrite_url_leaves_unknown_document_links() -> None:
    assert rewrite_url("missing.md", "a.md", {}, "..") == "missing.md"
    assert rewrite_url("#top", "a.md", {}, "..") == "#top"
    assert rewrite_url("mailto:x@y.z", "a.md", {}, "..") == "mailto:x@y.z"


def test_rendered_page_fields(make_doc) -> None:
    doc = make_doc(
        "---\nauthor: Jane\nimage: /assets/tso.png\nsummary: Store buffers explained.\ntags: [x86]\n---\n"
        "# x86-TSO\n\nOne two three.\n",
        name="2026-01-20-x86-tso.md",
    )
    page = render_document(doc)
    assert page.title == "x86-TSO"
    assert page.slug == "x86-tso"
    assert page.output_path == "posts/x86-tso.html"
    assert page.summary == "Store buffers explained."
    assert page.author == "Jane"
    assert page.image == "/assets/tso.png"
    assert page.categories == ("x86",)
    assert page.words == 3
    assert page.source == "2026-01-20-x86-tso.md"


def test_summary_falls_back_to_text(make_doc) -> None:
    page = render_document(make_doc("word " * 100))
    assert page.summary.endswith("...")
    assert len(page.summary) == 203


def test_empty_body_renders(make_doc) -> None:
    page = render_document(make_doc("---\ntitle: Empty\n---\n"))
    assert page.content == ""
    assert page.words == 0


def test_unterminated_fence_is_a_render_error(make_doc) -> None:
    doc = make_doc("---\ntitle: X\n---\nIntro\n\n```python\nprint(1)\n")
    with pytest.raises(RenderError) as excinfo:
        render_document(doc)
    assert "unterminated fenced code block" in excinfo.value.reason
    assert excinfo.value.line == 6
    assert excinfo.value.path == doc.source


@pytest.mark.parametrize(
    ("body", "reason"),
    [
        ("<div>\ntext\n", "unclosed <div> tag"),
        ("text</span>\n", "unexpected </span> with no open tag"),
        ("<div><span>x</div></span>\n", "unexpected </div>, expected </span>"),
        ("<!-- never closed\n", "unterminated HTML comment"),
        ("{: .note\n", "unterminated {: block"),
        ("{% include x.html\n", "unterminated {% block"),
    ],
)
def test_check_markup_rejects_unbalanced_markup(body: str, reason: str) -> None:
    with pytest.raises(RenderError) as excinfo:
        check_markup(body, "post.md")
    assert excinfo.value.reason == reason


@pytest.mark.parametrize(
    "body",
    [
        "std::vector<int> and a < b",
        "```\n<div>\n```\n",
        "`<div>` in code",
        "<details><summary>More</summary>\n\nHidden\n\n</details>",
        "<p>optional end tags<br>\n<img src='x.png'>",
        "<!-- <div> -->",
        "{: .note}\n{% raw %}",
        "<script>if (a < b && c > d) {}</script>",
    ],
)
def test_check_markup_accepts_balanced_markup(body: str) -> None:
    check_markup(body, "post.md")


def test_unsupported_fence_info_string_is_a_render_error(make_doc) -> None:
    doc = make_doc("Intro\n\n```python title\n# not a heading\n\na * b * c\n```\n")
    with pytest.raises(RenderError) as excinfo:
        render_document(doc)
    assert excinfo.value.reason == "unsupported fence info string"
    assert excinfo.value.line == 3


@pytest.mark.parametrize(
    "opener",
    [
        "```python title",
        "```python {.wide}",
        "~~~ c++ extra",
        "```python hl_lines=1",
    ],
)
def test_check_markup_rejects_fences_left_as_prose(opener: str) -> None:
    with pytest.raises(RenderError) as excinfo:
        check_markup(f"{opener}\n# heading\n```\n", "post.md")
    assert excinfo.value.reason == "unsupported fence info string"
    assert excinfo.value.line == 1


@pytest.mark.parametrize(
    "opener",
    [
        "```",
        "```python",
        "``` .python",
        "```{.python .numbered}",
        '```python hl_lines="1 3"',
        "```c++   ",
    ],
)
def test_supported_fence_openers_keep_code_verbatim(make_doc, opener: str) -> None:
    fence = opener[:3]
    page = render_document(make_doc(f"Intro\n\n{opener}\n# not a heading\na * b * c\n{fence}\n"))
    assert "<h1" not in page.content
    assert "<em>" not in page.content
    assert "# not a heading\na * b * c\n" in page.content


def test_inline_triple_backticks_are_not_a_fence() -> None:
    check_markup("```inline``` code in prose", "post.md")


def test_render_template_substitutes_in_one_pass() -> None:
    template = "<main>{{content}}</main><aside>{{sidebar}}</aside>{{unknown}}"
    out = render_template(template, content="{{sidebar}} {{content}}", sidebar="PANEL")
    assert out == "<main>{{sidebar}} {{content}}</main><aside>PANEL</aside>{{unknown}}"
