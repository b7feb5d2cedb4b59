"""Scanning helpers for Markdown bodies.

The validator and the renderer both need to look at document bodies while
ignoring code: fenced blocks, indented blocks and inline code spans. `mask_code`
blanks those regions out, keeping line numbers intact, so that regex scans
never see them.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from typing import Iterator, Optional
from urllib.parse import unquote

# Opening fences follow Python-Markdown's fenced_code: column 0, three or
# more backticks or tildes, then only `{attrs}`, or `lang` with optional
# hl_lines. The closing fence must repeat the opener exactly.
FENCE_OPEN_RE = re.compile(
    r"^(?P<fence>`{3,}|~{3,})[ ]*"
    r"(?:\{[^\n]*\}|\.?(?P<lang>[\w#.+-]*)[ ]*(?:hl_lines=(?P<quot>[\"']).*?(?P=quot)[ ]*)?)$"
)
# A line that reads as a fence but that fenced_code would leave as prose.
FENCE_LIKE_RE = re.compile(r"^(?:`{3,}[^`]*|~{3,}.*)$")
INLINE_CODE_RE = re.compile(r"(?<!`)(?P<ticks>`+)(?!`)(?P<code>(?:(?!\n[ \t]*\n).)+?)(?<!`)(?P=ticks)(?!`)", re.DOTALL)
COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
TAG_RE = re.compile(r"<(?P<close>/)?(?P<name>[A-Za-z][A-Za-z0-9-]*)(?=[\s/>])(?P<attrs>[^>]*)>")
SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")
DOCUMENT_LINK_SUFFIXES = (".md", ".markdown")
POST_LINK_RE = re.compile(r"^posts/(?P<slug>[^/]+)\.html$")

# Only known elements are balance-checked, so prose such as `vector<int>`
# is not mistaken for markup. Elements with optional end tags are skipped.
CHECKED_TAGS = frozenset(
    """
    a abbr article aside audio b blockquote button canvas center cite code
    del details dfn div dl em fieldset figcaption figure font footer form h1 h2 h3
    h4 h5 h6 header i iframe ins kbd label main mark math nav noscript object ol
    picture pre q s samp script section select small span strong style sub summary
    sup svg table textarea time u ul var video
    """.split()
)
RAW_TEXT_TAGS = frozenset({"script", "style"})


@dataclass(frozen=True)
class FenceScan:
    masked: str
    # 0-based index of the opening line of an unterminated fence
    unclosed_line: Optional[int] = None
    unclosed_fence: str = ""
    # 0-based index of the first fence-like line fenced_code would not open
    unsupported_line: Optional[int] = None


def _blank(text: str) -> str:
    return re.sub(r"[^\n]", " ", text)


def mask_fences(body: str) -> FenceScan:
    lines = body.split("\n")
    out: list[str] = []
    fence = ""
    opened_at: Optional[int] = None
    previous_blank = True
    in_indented = False
    unsupported: Optional[int] = None
    for index, line in enumerate(lines):
        if fence:
            if line.rstrip(" ") == fence:
                fence = ""
                opened_at = None
            out.append("")
            continue
        match = FENCE_OPEN_RE.match(line)
        if match:
            fence = match.group("fence")
            opened_at = index
            out.append("")
            previous_blank = False
            in_indented = False
            continue
        if unsupported is None and FENCE_LIKE_RE.match(line):
            unsupported = index
        is_blank = not line.strip()
        indented = line.startswith(("    ", "\t"))
        if indented and not is_blank and (previous_blank or in_indented):
            in_indented = True
            out.append("")
            continue
        if not is_blank:
            in_indented = False
        previous_blank = is_blank
        out.append(line)
    if fence:
        return FenceScan("\n".join(out), opened_at, fence, unsupported)
    return FenceScan("\n".join(out), unsupported_line=unsupported)


def mask_code(body: str) -> FenceScan:
    """Blank out fenced blocks, indented code blocks and inline code spans."""
    scan = mask_fences(body)
    masked = INLINE_CODE_RE.sub(lambda m: _blank(m.group(0)), scan.masked)
    return FenceScan(masked, scan.unclosed_line, scan.unclosed_fence, scan.unsupported_line)


def mask_comments(text: str) -> str:
    return COMMENT_RE.sub(lambda m: _blank(m.group(0)), text)


def line_of(text: str, offset: int) -> int:
    """0-based line index of a character offset."""
    return text.count("\n", 0, offset)


@dataclass(frozen=True)
class Tag:
    name: str
    closing: bool
    self_closing: bool
    attrs: str
    start: int
    end: int


def iter_tags(text: str) -> Iterator[Tag]:
    """Yield HTML tags in masked text, skipping the bodies of script/style."""
    pos = 0
    while True:
        match = TAG_RE.search(text, pos)
        if not match:
            return
        name = match.group("name").lower()
        attrs = match.group("attrs")
        closing = bool(match.group("close"))
        tag = Tag(name, closing, attrs.rstrip().endswith("/"), attrs, match.start(), match.end())
        yield tag
        pos = match.end()
        if name in RAW_TEXT_TAGS and not closing and not tag.self_closing:
            end = re.compile(rf"</{name}\s*>", re.IGNORECASE).search(text, pos)
            if end is None:
                return
            pos = end.start()


def is_external(target: str) -> bool:
    return target.startswith(("#", "//")) or bool(SCHEME_RE.match(target))


def split_target(target: str) -> tuple[str, str]:
    """Split a URL into (path, '#fragment' or '') and drop any query string."""
    target = target.strip()
    fragment = ""
    if "#" in target:
        target, fragment = target.split("#", 1)
        fragment = f"#{fragment}"
    target = target.split("?", 1)[0]
    return unquote(target), fragment


def is_document_link(path: str) -> bool:
    return path.lower().endswith(DOCUMENT_LINK_SUFFIXES)


def resolve_document_link(doc_rel: str, path: str) -> Optional[str]:
    """Resolve a link to another source document into a path relative to the input dir."""
    if path.startswith("/"):
        joined = path.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(doc_rel), path)
    resolved = posixpath.normpath(joined)
    if resolved.startswith("..") or resolved in {".", ""}:
        return None
    return resolved


def asset_key(path: str, page_relative: bool = False) -> Optional[str]:
    """Map a local URL path to a key relative to the site root.

    Markdown-generated URLs that are bare (``images/x.png``) are rewritten to
    the site root by the renderer, so they resolve against the root. ``./``
    and ``../`` URLs, and bare URLs in raw HTML, are left alone and therefore
    resolve against the page's own directory (``posts/``).
    """
    if path.startswith("/"):
        joined = path.lstrip("/")
    elif page_relative or path.startswith(("./", "../")):
        joined = posixpath.join("posts", path)
    else:
        joined = path
    if not joined:
        return ""
    resolved = posixpath.normpath(joined)
    if resolved.startswith(".."):
        return None
    if resolved == ".":
        return ""
    if joined.endswith("/"):
        resolved += "/"
    return resolved
