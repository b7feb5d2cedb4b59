from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from docpress.content import Document, load_document


@pytest.fixture
def posts_dir(tmp_path: Path) -> Path:
    path = tmp_path / "posts"
    path.mkdir()
    return path


@pytest.fixture
def write_doc(posts_dir: Path) -> Callable[[str, str], Path]:
    def _write(name: str, text: str) -> Path:
        path = posts_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_doc(posts_dir: Path, write_doc) -> Callable[..., Document]:
    def _make(text: str, name: str = "2026-01-24-vtables.md") -> Document:
        return load_document(write_doc(name, text), posts_dir)

    return _make
