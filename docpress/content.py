from __future__ import annotations

import datetime as dt
import html as html_lib
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

import yaml

from .cache import hash_bytes
from .errors import DuplicateSlugError, MalformedFrontMatterError
from .utils import parse_bool

DOCUMENT_SUFFIXES = {".md", ".markdown"}
FRONT_MATTER_OPEN = "---"
FRONT_MATTER_CLOSE = {"---", "..."}
DATE_PREFIX_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})-(?P<rest>.+)$")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")


@dataclass(frozen=True)
class Document:
    source: Path
    rel: str
    meta: Mapping[str, object]
    body: str
    title: str
    date: dt.datetime
    slug: str
    digest: str
    categories: tuple[str, ...] = ()
    draft: bool = False
    # 1-based source line of the first body line
    body_line: int = 1

    @property
    def permalink(self) -> str:
        return f"posts/{self.slug}.html"


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_list(value: str) -> list[str]:
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1]
        items = [item.strip().strip("'\"") for item in inner.split(",")]
    else:
        items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


def split_front_matter(text: str, path: Path | str = "<string>") -> tuple[str | None, str, int]:
    """Split raw text into (front-matter source, body, body start line).

    Returns ``None`` for the front-matter when the document has none.
    """
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() != FRONT_MATTER_OPEN:
        return None, clean_text, 1
    for i in range(1, len(lines)):
        if lines[i].strip() in FRONT_MATTER_CLOSE:
            return "\n".join(lines[1:i]), "\n".join(lines[i + 1 :]), i + 2
    raise MalformedFrontMatterError(path, "front-matter block is not closed")


def parse_front_matter(text: str, path: Path | str = "<string>") -> tuple[dict, str]:
    meta, body, _ = _parse_front_matter(text, path)
    return meta, body


def _parse_front_matter(text: str, path: Path | str) -> tuple[dict, str, int]:
    source, body, body_line = split_front_matter(text, path)
    if source is None:
        return {}, body, body_line
    try:
        data = yaml.safe_load(source)
    except yaml.YAMLError as exc:
        reason = str(exc).replace("\n", " ")
        raise MalformedFrontMatterError(path, reason) from exc
    if data is None:
        return {}, body, body_line
    if not isinstance(data, dict):
        raise MalformedFrontMatterError(path, f"expected a mapping, got {type(data).__name__}")
    meta = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise MalformedFrontMatterError(path, f"non-string key {key!r}")
        meta[key.strip().lower()] = value
    return meta, body, body_line


def extract_title(meta: Mapping[str, object], body: str) -> tuple[str, str, int]:
    """Return (title, body, lines consumed from the top of the body)."""
    title = meta.get("title")
    if title is not None and str(title).strip():
        return str(title).strip(), body, 0
    lines = body.splitlines()
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("# "):
            title = stripped[2:].strip() or "Untitled"
            return title, "\n".join(lines[i + 1 :]), i + 1
        if stripped:
            break
    return "Untitled", body, 0


def _naive(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is not None:
        value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


def parse_date(meta: Mapping[str, object], file_path: Path) -> dt.datetime:
    date_value = meta.get("date")
    time_value = meta.get("time")
    if isinstance(time_value, int) and not isinstance(time_value, bool):
        # YAML 1.1 reads an unquoted 09:30 as sexagesimal minutes
        time_value = f"{time_value // 60:02d}:{time_value % 60:02d}"
    time_value = str(time_value or "").strip()
    if isinstance(date_value, dt.datetime):
        return _naive(date_value)
    if isinstance(date_value, dt.date):
        date_value = date_value.isoformat()
    date_text = str(date_value or "").strip()
    if date_text:
        try:
            if "T" in date_text or " " in date_text:
                # fromisoformat only takes a "Z" suffix from Python 3.11
                if date_text[-1] in "Zz":
                    date_text = date_text[:-1] + "+00:00"
                return _naive(dt.datetime.fromisoformat(date_text))
            date_part = dt.date.fromisoformat(date_text)
            time_part = dt.time.fromisoformat(time_value) if time_value else dt.time()
        except ValueError as exc:
            raise MalformedFrontMatterError(file_path, f"invalid date {date_text!r}") from exc
        return dt.datetime.combine(date_part, time_part)
    prefix = DATE_PREFIX_RE.match(file_path.stem)
    if prefix:
        try:
            return dt.datetime.combine(dt.date.fromisoformat(prefix.group("date")), dt.time())
        except ValueError:
            pass
    return dt.datetime.fromtimestamp(file_path.stat().st_mtime).replace(microsecond=0)


def document_slug(meta: Mapping[str, object], file_path: Path) -> str:
    explicit = str(meta.get("slug") or "").strip()
    if explicit:
        return slugify(explicit)
    stem = file_path.stem
    prefix = DATE_PREFIX_RE.match(stem)
    if prefix:
        stem = prefix.group("rest")
    return slugify(stem)


def get_categories(meta: Mapping[str, object]) -> list[str]:
    for key in ("category", "categories", "tags"):
        value = meta.get(key)
        if not value:
            continue
        if isinstance(value, (list, tuple)):
            items = [str(item).strip() for item in value if str(item).strip()]
        else:
            items = parse_list(str(value)) if key != "category" else [str(value).strip()]
        if items:
            return items
    return ["General"]


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count


def find_documents(input_dir: Path) -> list[Path]:
    paths = [
        path
        for path in input_dir.rglob("*")
        if path.is_file() and path.suffix.lower() in DOCUMENT_SUFFIXES
    ]
    return sorted(paths, key=lambda p: p.as_posix())


def rel_key(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def load_document(path: Path, root: Path) -> Document:
    raw = path.read_bytes()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedFrontMatterError(path, f"not valid UTF-8: {exc}") from exc
    text = text.replace("\r\n", "\n")
    meta, body, body_line = _parse_front_matter(text, path)
    title, body, consumed = extract_title(meta, body)
    slug = document_slug(meta, path)
    return Document(
        source=path,
        rel=rel_key(path, root),
        meta=MappingProxyType(meta),
        body=body,
        title=title,
        date=parse_date(meta, path),
        slug=slug,
        digest=hash_bytes(raw),
        categories=tuple(get_categories(meta)),
        draft=parse_bool(meta.get("draft")),
        body_line=body_line + consumed,
    )


def check_unique_slugs(documents: list[Document]) -> None:
    by_slug: dict[str, list[Path]] = {}
    for document in documents:
        by_slug.setdefault(document.slug, []).append(document.source)
    for slug in sorted(by_slug):
        if len(by_slug[slug]) > 1:
            raise DuplicateSlugError(slug, by_slug[slug])


def load_documents(paths: list[Path], root: Path, workers: int = 1) -> dict[Path, Document]:
    ordered = sorted(paths, key=lambda p: p.as_posix())
    workers = min(max(1, workers), len(ordered)) if ordered else 1
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            documents = list(executor.map(lambda p: load_document(p, root), ordered))
    else:
        documents = [load_document(path, root) for path in ordered]
    check_unique_slugs(documents)
    return {document.source: document for document in documents}
