from __future__ import annotations

import json
from pathlib import Path

from docpress.cache import MANIFEST_NAME, OutputWriter, hash_text, list_files, load_manifest


def test_writer_skips_unchanged_files(tmp_path: Path) -> None:
    out = tmp_path / "dist"
    first = OutputWriter(out)
    first.write("index.html", "<p>home</p>")
    first.write("posts/a.html", "<p>a</p>")
    assert first.finish() == []
    assert first.written == ["index.html", "posts/a.html"]

    second = OutputWriter(out)
    second.write("index.html", "<p>home</p>")
    second.write("posts/a.html", "<p>a, edited</p>")
    second.finish()
    assert second.unchanged == ["index.html"]
    assert second.written == ["posts/a.html"]
    assert (out / "posts" / "a.html").read_text(encoding="utf-8") == "<p>a, edited</p>"


def test_writer_rewrites_files_edited_by_hand(tmp_path: Path) -> None:
    out = tmp_path / "dist"
    writer = OutputWriter(out)
    writer.write("index.html", "<p>home</p>")
    writer.finish()
    (out / "index.html").write_text("tampered", encoding="utf-8")

    again = OutputWriter(out)
    again.write("index.html", "<p>home</p>")
    assert again.written == ["index.html"]
    assert (out / "index.html").read_text(encoding="utf-8") == "<p>home</p>"


def test_manifest_is_sorted_json(tmp_path: Path) -> None:
    writer = OutputWriter(tmp_path)
    writer.write("b.html", "b")
    writer.write("a.html", "a")
    writer.finish()
    data = json.loads((tmp_path / MANIFEST_NAME).read_text(encoding="utf-8"))
    assert data["version"] == 1
    assert list(data["files"]) == ["a.html", "b.html"]
    assert data["files"]["a.html"] == hash_text("a")


def test_load_manifest_ignores_corrupt_or_foreign_files(tmp_path: Path) -> None:
    assert load_manifest(tmp_path) == {}
    (tmp_path / MANIFEST_NAME).write_text("{not json", encoding="utf-8")
    assert load_manifest(tmp_path) == {}
    (tmp_path / MANIFEST_NAME).write_text('{"version": 99, "files": {"a": "b"}}', encoding="utf-8")
    assert load_manifest(tmp_path) == {}


def test_list_files_is_sorted(tmp_path: Path) -> None:
    (tmp_path / "b").mkdir()
    (tmp_path / "b" / "two.txt").write_text("2", encoding="utf-8")
    (tmp_path / "one.txt").write_text("1", encoding="utf-8")
    files = list_files(tmp_path)
    assert [p.relative_to(tmp_path).as_posix() for p in files] == ["b/two.txt", "one.txt"]
    assert list_files(tmp_path / "missing") == []
