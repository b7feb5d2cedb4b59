from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Collection, Iterator, Optional

from .cache import list_files
from .content import Document
from .errors import UnresolvedReferenceError
from .markup import (
    POST_LINK_RE,
    asset_key,
    is_document_link,
    is_external,
    iter_tags,
    line_of,
    mask_code,
    mask_comments,
    resolve_document_link,
    split_target,
)
from .snippets import parse_snippet_target, resolve_snippet_path, snippet_problem

IMAGE_FIELDS = ("image", "thumbnail", "cover", "banner")
# Files the publisher writes itself; links to them always resolve.
GENERATED_FILES = frozenset({"index.html", "atom.xml", "rss.xml", "sitemap.xml"})

MD_LINK_RE = re.compile(
    r"(?P<image>!)?\[(?P<text>(?:[^\[\]\\]|\\.|\[[^\[\]]*\])*)\]"
    r"\(\s*(?:<(?P<angle>[^>\n]*)>|(?P<target>[^\s()]*(?:\([^\s()]*\)[^\s()]*)*))"
    r"(?:\s+(?:\"[^\"]*\"|'[^']*'|\([^)]*\)))?\s*\)"
)
REF_DEF_RE = re.compile(r"^[ ]{0,3}\[(?!\^)(?P<label>[^\]]+)\]:[ \t]*<?(?P<target>[^\s>]+)>?", re.MULTILINE)
URL_ATTR_RE = re.compile(r"""\b(?:src|href|poster)\s*=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s"'>]+))""", re.IGNORECASE)


@dataclass(frozen=True)
class Reference:
    target: str
    field: str = "body"
    # 1-based source line; 0 for front-matter fields
    line: int = 0
    # True for URLs inside raw HTML, which reach the page untouched
    raw: bool = False


def collect_references(document: Document) -> list[Reference]:
    refs = []
    for field in IMAGE_FIELDS:
        value = document.meta.get(field)
        if isinstance(value, str) and value.strip():
            refs.append(Reference(value.strip(), field=field))
    refs.extend(iter_body_references(document.body, document.body_line))
    return refs


def iter_body_references(body: str, first_line: int = 1) -> Iterator[Reference]:
    masked = mask_comments(mask_code(body).masked)
    found = []
    for match in MD_LINK_RE.finditer(masked):
        target = match.group("angle") if match.group("angle") is not None else match.group("target")
        found.append((match.start(), Reference(target or "", line=first_line + line_of(masked, match.start()))))
    for match in REF_DEF_RE.finditer(masked):
        found.append((match.start(), Reference(match.group("target"), line=first_line + line_of(masked, match.start()))))
    for tag in iter_tags(masked):
        if tag.closing:
            continue
        for attr in URL_ATTR_RE.finditer(tag.attrs):
            value = attr.group("dq") or attr.group("sq") or attr.group("bare") or ""
            line = first_line + line_of(masked, tag.start)
            found.append((tag.start, Reference(value, line=line, raw=True)))
    found.sort(key=lambda item: item[0])
    for _, ref in found:
        if ref.target.strip():
            yield ref


def scan_assets(static_dir: Path) -> frozenset[str]:
    return frozenset(path.relative_to(static_dir).as_posix() for path in list_files(static_dir))


def _asset_exists(key: str, assets: Collection[str]) -> bool:
    if key == "" or key in assets or key in GENERATED_FILES:
        return True
    if key.endswith("/"):
        return f"{key}index.html" in assets or any(item.startswith(key) for item in assets)
    return False


def check_reference(
    document: Document,
    ref: Reference,
    assets: Collection[str],
    documents: Collection[str] = (),
    slugs: Collection[str] = (),
    snippet_root: Optional[Path] = None,
) -> bool:
    """Return True when a reference resolves."""
    snippet = parse_snippet_target(ref.target)
    if snippet is not None:
        root = snippet_root if snippet_root is not None else document.source.parent
        file_path = resolve_snippet_path(snippet.path, document.source.parent, root)
        return snippet_problem(snippet, file_path) is None
    if is_external(ref.target):
        return True
    path, _ = split_target(ref.target)
    if not path:
        return True
    if is_document_link(path):
        return resolve_document_link(document.rel, path) in documents
    key = asset_key(path, page_relative=ref.raw)
    if key is None:
        return False
    post = POST_LINK_RE.match(key)
    if post:
        return post.group("slug") in slugs
    return _asset_exists(key, assets)


def validate_document(
    document: Document,
    assets: Collection[str],
    documents: Collection[str] = (),
    slugs: Collection[str] = (),
    snippet_root: Optional[Path] = None,
) -> list[UnresolvedReferenceError]:
    """Report every local reference in a document that does not resolve.

    `assets` holds site-root relative posix paths of the static files,
    `documents` the input-relative paths of all source documents and `slugs`
    the slugs they publish under. Never raises for a broken reference.
    """
    errors = []
    for ref in collect_references(document):
        if not check_reference(document, ref, assets, documents, slugs, snippet_root):
            errors.append(UnresolvedReferenceError(document.source, ref.target, ref.field, ref.line))
    return errors
