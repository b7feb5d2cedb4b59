from __future__ import annotations

import hashlib
import json
from pathlib import Path

MANIFEST_NAME = ".docpress-manifest.json"
MANIFEST_VERSION = 1


def list_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return sorted((path for path in root.rglob("*") if path.is_file()), key=lambda p: p.as_posix())


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_file(path: Path) -> str:
    return hash_bytes(path.read_bytes())


def load_manifest(output_dir: Path) -> dict[str, str]:
    path = output_dir / MANIFEST_NAME
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}
    if not isinstance(data, dict) or data.get("version") != MANIFEST_VERSION:
        return {}
    files = data.get("files", {})
    return {str(k): str(v) for k, v in files.items()} if isinstance(files, dict) else {}


def write_manifest(output_dir: Path, files: dict[str, str]) -> None:
    data = {"version": MANIFEST_VERSION, "files": dict(sorted(files.items()))}
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / MANIFEST_NAME).write_text(
        json.dumps(data, indent=2, ensure_ascii=True) + "\n", encoding="utf-8"
    )


class OutputWriter:
    """Writes generated files, skipping any whose content hash is unchanged.

    Every written path is recorded so that `finish()` can drop files a
    previous build produced but this one did not.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir
        self.previous = load_manifest(output_dir)
        self.files: dict[str, str] = {}
        self.written: list[str] = []
        self.unchanged: list[str] = []

    def write(self, rel_path: str, text: str) -> Path:
        digest = hash_text(text)
        path = self.output_dir / rel_path
        self.files[rel_path] = digest
        if self.previous.get(rel_path) == digest and path.exists() and hash_file(path) == digest:
            self.unchanged.append(rel_path)
            return path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        self.written.append(rel_path)
        return path

    def finish(self) -> list[str]:
        removed = []
        for rel_path in sorted(set(self.previous) - set(self.files)):
            path = self.output_dir / rel_path
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            removed.append(rel_path)
        write_manifest(self.output_dir, self.files)
        return removed
