from __future__ import annotations

import html
import re
import xml.etree.ElementTree as etree
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from markdown.extensions import Extension
from markdown.inlinepatterns import InlineProcessor
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import TextLexer, get_lexer_for_filename
from pygments.util import ClassNotFound

RE_CODE_LINK = r"\[(?P<text>[^\]]+)\]\(code:(?P<path>[^#)\s]+)(?:#L(?P<start>\d+)(?:-L?(?P<end>\d+))?)?\)"
SNIPPET_TARGET_RE = re.compile(r"^code:(?P<path>[^#\s]+)(?:#L(?P<start>\d+)(?:-L?(?P<end>\d+))?)?$")


@dataclass(frozen=True)
class SnippetTarget:
    path: str
    start: Optional[int] = None
    end: Optional[int] = None


def parse_snippet_target(target: str) -> Optional[SnippetTarget]:
    match = SNIPPET_TARGET_RE.match(target.strip())
    if not match:
        return None
    start = int(match.group("start")) if match.group("start") else None
    end = int(match.group("end")) if match.group("end") else None
    return SnippetTarget(match.group("path"), start, end)


def resolve_snippet_path(path: str, base_path: Path, snippet_root: Path) -> Path:
    if path.startswith("/"):
        # Root-relative path
        return (snippet_root / path.lstrip("/")).resolve()
    # Page-relative path
    return (base_path / path).resolve()


def snippet_problem(snippet: SnippetTarget, file_path: Path) -> Optional[str]:
    """Return why a snippet reference cannot be included, or None if it can."""
    if not file_path.is_file():
        return "file not found"
    try:
        text = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return f"error reading file: {exc}"
    if snippet.start is None:
        return None
    total = len(text.splitlines())
    last = snippet.end if snippet.end is not None else snippet.start
    if snippet.start < 1 or last < snippet.start:
        return "invalid line range"
    if last > total:
        return f"line {last} is past the end of the file ({total} lines)"
    return None


def highlight_snippet(code: str, file_path: Path, snippet: SnippetTarget) -> tuple[str, str]:
    """Return (highlighted html, language alias) for a snippet."""
    try:
        lexer = get_lexer_for_filename(file_path.name, code)
    except ClassNotFound:
        lexer = TextLexer()
    lang = lexer.aliases[0] if lexer.aliases else "text"
    linenostart = 1
    hl_lines: list[int] = []
    if snippet.start is not None and snippet.end is not None:
        lines = code.splitlines(keepends=True)
        code = "".join(lines[snippet.start - 1 : snippet.end])
        linenostart = snippet.start
    elif snippet.start is not None:
        hl_lines = [snippet.start]
    formatter = HtmlFormatter(
        linenos=True,
        cssclass="codehilite",
        hl_lines=hl_lines,
        linenostart=linenostart,
    )
    return highlight(code, lexer, formatter), lang


class CodeLinkerProcessor(InlineProcessor):
    def __init__(self, pattern, md, base_path: Path, snippet_root: Path):
        super().__init__(pattern, md)
        self.base_path = base_path
        self.snippet_root = snippet_root

    def handleMatch(self, m, data):
        path_text = m.group("path").strip()
        snippet = SnippetTarget(
            path_text,
            int(m.group("start")) if m.group("start") else None,
            int(m.group("end")) if m.group("end") else None,
        )
        file_path = resolve_snippet_path(path_text, self.base_path, self.snippet_root)
        problem = snippet_problem(snippet, file_path)
        if problem:
            el = etree.Element("span")
            el.set("class", "code-link-error")
            el.text = f"{problem}: {path_text}"
            return el, m.start(0), m.end(0)

        code = file_path.read_text(encoding="utf-8")
        highlighted, lang = highlight_snippet(code, file_path, snippet)
        line_attr = ""
        if snippet.start is not None:
            line_attr = f' data-line="{snippet.start}"'
        figure = (
            f'<figure class="code-snippet" data-lang="{html.escape(lang)}"{line_attr}>'
            f"<figcaption>{html.escape(m.group('text'))}</figcaption>"
            f"{highlighted}"
            "</figure>"
        )
        return self.md.htmlStash.store(figure), m.start(0), m.end(0)


class CodeLinkerExtension(Extension):
    def __init__(self, base_path: Path, snippet_root: Path, **kwargs):
        super().__init__(**kwargs)
        self.base_path = base_path
        self.snippet_root = snippet_root

    def extendMarkdown(self, md):
        md.inlinePatterns.register(
            CodeLinkerProcessor(RE_CODE_LINK, md, self.base_path, self.snippet_root),
            "code_linker",
            175,
        )
