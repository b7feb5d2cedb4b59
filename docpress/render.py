from __future__ import annotations

import datetime as dt
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from .content import Document, count_words
from .errors import RenderError
from .markup import (
    CHECKED_TAGS,
    is_document_link,
    is_external,
    iter_tags,
    line_of,
    mask_code,
    mask_comments,
    resolve_document_link,
    split_target,
)
from .snippets import CodeLinkerExtension

TAG_RE = re.compile(r"<[^>]+>")
TEMPLATE_KEY_RE = re.compile(r"\{\{(\w+)\}\}")
SUMMARY_LENGTH = 200
TEMPLATE_DELIMITERS = (("{:", "}"), ("{%", "%}"), ("{{", "}}"))
MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "toc", "footnotes"]


@dataclass(frozen=True)
class RenderOptions:
    toc_depth: str = "2-4"
    # Root for `code:` links starting with "/"; defaults to the document's directory
    snippet_root: Optional[Path] = None
    # Input-relative source path -> permalink, for links between documents
    links: Mapping[str, str] = field(default_factory=dict)
    root: str = ".."


@dataclass(frozen=True)
class RenderedPage:
    slug: str
    title: str
    date: dt.datetime
    source: str
    content: str
    toc: str = ""
    summary: str = ""
    words: int = 0
    categories: tuple[str, ...] = ()
    image: str = ""
    author: str = ""

    @property
    def output_path(self) -> str:
        return f"posts/{self.slug}.html"


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)


def render_template(template: str, **context: str) -> str:
    # Single pass: substituted values are never scanned for placeholders.
    return TEMPLATE_KEY_RE.sub(lambda m: context.get(m.group(1), m.group(0)), template)


def read_template(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def copy_static(static_dir: Path, output_dir: Path) -> None:
    for item in sorted(static_dir.iterdir(), key=lambda p: p.name):
        dest = output_dir / item.name
        if item.is_dir():
            if dest.exists():
                shutil.rmtree(dest)
            shutil.copytree(item, dest)
        else:
            shutil.copy2(item, dest)


def rewrite_url(value: str, doc_rel: str, links: Mapping[str, str], root: str) -> str:
    if is_external(value):
        return value
    path, fragment = split_target(value)
    if is_document_link(path):
        permalink = links.get(resolve_document_link(doc_rel, path) or "")
        if permalink:
            return f"{root}/{permalink}{fragment}"
        return value
    if value.startswith(("/", "./", "../")):
        return value
    return f"{root}/{value}"


class LinkRewriter(Treeprocessor):
    """Points Markdown links and images at the site root.

    Raw HTML is stashed before tree processing and never reaches this pass.
    """

    def __init__(self, md, doc_rel: str, links: Mapping[str, str], root: str):
        super().__init__(md)
        self.doc_rel = doc_rel
        self.links = links
        self.root = root

    def run(self, root):
        for el in root.iter():
            if el.tag == "a":
                attr = "href"
            elif el.tag == "img":
                attr = "src"
            else:
                continue
            value = el.get(attr)
            if value:
                el.set(attr, rewrite_url(value, self.doc_rel, self.links, self.root))


class LinkRewriterExtension(Extension):
    def __init__(self, doc_rel: str, links: Mapping[str, str], root: str, **kwargs):
        super().__init__(**kwargs)
        self.doc_rel = doc_rel
        self.links = links
        self.root = root

    def extendMarkdown(self, md):
        md.treeprocessors.register(LinkRewriter(md, self.doc_rel, self.links, self.root), "link_rewriter", 15)


def check_markup(body: str, path: Path | str, first_line: int = 1) -> None:
    """Raise RenderError for markup the renderer cannot pass through intact."""
    scan = mask_code(body)
    if scan.unsupported_line is not None:
        raise RenderError(path, "unsupported fence info string", first_line + scan.unsupported_line)
    if scan.unclosed_line is not None:
        raise RenderError(
            path, f"unterminated fenced code block ({scan.unclosed_fence})", first_line + scan.unclosed_line
        )
    text = mask_comments(scan.masked)
    comment = text.find("<!--")
    if comment >= 0:
        raise RenderError(path, "unterminated HTML comment", first_line + line_of(text, comment))

    for index, line in enumerate(text.split("\n")):
        for opener, closer in TEMPLATE_DELIMITERS:
            start = line.find(opener)
            while start >= 0:
                end = line.find(closer, start + len(opener))
                if end < 0:
                    raise RenderError(path, f"unterminated {opener} block", first_line + index)
                start = line.find(opener, end + len(closer))

    stack = []
    for tag in iter_tags(text):
        if tag.name not in CHECKED_TAGS or tag.self_closing:
            continue
        if not tag.closing:
            stack.append(tag)
            continue
        if stack and stack[-1].name == tag.name:
            stack.pop()
            continue
        line = first_line + line_of(text, tag.start)
        if stack:
            raise RenderError(path, f"unexpected </{tag.name}>, expected </{stack[-1].name}>", line)
        raise RenderError(path, f"unexpected </{tag.name}> with no open tag", line)
    if stack:
        tag = stack[-1]
        raise RenderError(path, f"unclosed <{tag.name}> tag", first_line + line_of(text, tag.start))


def make_summary(meta: Mapping[str, object], html_content: str) -> str:
    summary = meta.get("summary") or meta.get("description")
    if summary:
        return str(summary).strip()
    text = " ".join(strip_tags(html_content).split())
    return text[:SUMMARY_LENGTH] + ("..." if len(text) > SUMMARY_LENGTH else "")


def render_document(document: Document, options: Optional[RenderOptions] = None) -> RenderedPage:
    """Render a validated document to HTML.

    Output depends only on the document and the options; a new Markdown
    instance is used for every call.
    """
    options = options or RenderOptions()
    check_markup(document.body, document.source, document.body_line)
    snippet_root = options.snippet_root or document.source.parent
    md = markdown.Markdown(
        extensions=MARKDOWN_EXTENSIONS
        + [
            CodeLinkerExtension(document.source.parent, snippet_root),
            LinkRewriterExtension(document.rel, options.links, options.root),
        ],
        extension_configs={"toc": {"toc_depth": options.toc_depth}},
    )
    html_content = md.convert(document.body)
    toc_html = md.toc
    author = document.meta.get("author")
    image = document.meta.get("image")
    return RenderedPage(
        slug=document.slug,
        title=document.title,
        date=document.date,
        source=document.rel,
        content=html_content,
        toc=toc_html,
        summary=make_summary(document.meta, html_content),
        words=count_words(strip_tags(html_content)),
        categories=document.categories,
        image=image.strip() if isinstance(image, str) else "",
        author=str(author).strip() if author else "",
    )
