"""docpress exception hierarchy.

Structural errors abort a build. Reference and render errors are collected
per document and reported at the end of the build.
"""

from __future__ import annotations

from pathlib import Path


class DocpressError(Exception):
    """Base exception for all docpress errors."""


class ConfigError(DocpressError):
    """Raised for an unreadable or invalid site config file."""


class StructuralError(DocpressError):
    """Raised when the document set as a whole cannot be built."""


class MalformedFrontMatterError(StructuralError):
    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: malformed front-matter: {reason}")


class DuplicateSlugError(StructuralError):
    def __init__(self, slug: str, paths: list[Path]) -> None:
        self.slug = slug
        self.paths = sorted(paths, key=lambda p: p.as_posix())
        joined = ", ".join(p.as_posix() for p in self.paths)
        super().__init__(f"duplicate slug {slug!r}: {joined}")


class UnresolvedReferenceError(DocpressError):
    """A local reference that does not resolve. Returned, not raised."""

    def __init__(self, path: Path | str, target: str, field: str = "body", line: int = 0) -> None:
        self.path = Path(path)
        self.target = target
        self.field = field
        self.line = line
        where = f"line {line}" if line else f"front-matter {field!r}"
        super().__init__(f"{self.path}: unresolved reference {target!r} ({where})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnresolvedReferenceError):
            return NotImplemented
        return (self.path, self.target, self.field, self.line) == (
            other.path,
            other.target,
            other.field,
            other.line,
        )

    def __hash__(self) -> int:
        return hash((self.path, self.target, self.field, self.line))


class RenderError(DocpressError):
    """Raised when a document body cannot be rendered; fatal to that document only."""

    def __init__(self, path: Path | str, reason: str, line: int = 0) -> None:
        self.path = Path(path)
        self.reason = reason
        self.line = line
        where = f" (line {line})" if line else ""
        super().__init__(f"{self.path}: {reason}{where}")
