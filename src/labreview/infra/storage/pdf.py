from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class PdfStorageBackend(ABC):
    @abstractmethod
    def save_file(self, content: bytes, *, name: str) -> str:
        """Persist PDF bytes and return a URL/path reference."""

    @abstractmethod
    def delete_file(self, dest: str) -> None:
        """Best-effort deletion of a previously saved file."""


class LocalPdfStorageBackend(PdfStorageBackend):
    def __init__(self, base_dir: Path) -> None:
        self._base = base_dir

    def save_file(self, content: bytes, *, name: str) -> str:
        dest_path = self._base / name
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_bytes(content)
        return str(dest_path)

    def delete_file(self, dest: str) -> None:
        path = Path(dest)
        if path.exists():
            try:
                path.unlink()
            except OSError:
                pass
