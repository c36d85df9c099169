"""
Named JSON document persistence.

``DocumentStore`` is the ``load(name) / save(name, data)`` seam used for
the account book and its configuration flags. The default implementation
keeps one file per document under a base directory and replaces files
atomically, so a crash mid-write never leaves a truncated document.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DocumentStore(Protocol):
    """Load/save named JSON documents."""

    def load(self, name: str) -> Any | None:
        """Return the parsed document, or None if it does not exist."""
        ...

    def save(self, name: str, data: Any) -> None:
        """Persist a document, replacing any previous version."""
        ...


class FileDocumentStore:
    """Filesystem-backed DocumentStore.

    Args:
        base_path: Directory holding the documents. Created on demand.
    """

    def __init__(self, base_path: str | Path) -> None:
        self._base_path = Path(base_path)

    def _path(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"invalid document name: {name!r}")
        return self._base_path / name

    def load(self, name: str) -> Any | None:
        path = self._path(name)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, name: str, data: Any) -> None:
        path = self._path(name)
        self._base_path.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._base_path, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class MemoryDocumentStore:
    """In-process DocumentStore. Documents are deep-copied via JSON on both sides."""

    def __init__(self) -> None:
        self._docs: dict[str, str] = {}

    def load(self, name: str) -> Any | None:
        raw = self._docs.get(name)
        return None if raw is None else json.loads(raw)

    def save(self, name: str, data: Any) -> None:
        self._docs[name] = json.dumps(data)
