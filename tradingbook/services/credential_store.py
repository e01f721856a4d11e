from __future__ import annotations

from pathlib import Path


class MemoryCredentialStore:
    def __init__(self, token: str = "") -> None:
        self._token = token

    def load(self) -> str:
        return self._token

    def save(self, token: str) -> None:
        self._token = token


class FileCredentialStore:
    """Keeps the auth token in a single file; saving an empty token removes it."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> str:
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8").strip()

    def save(self, token: str) -> None:
        if not token:
            self.path.unlink(missing_ok=True)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding="utf-8")
