"""File-backed list of contacts that subscribed to the bot."""

from __future__ import annotations

import threading
from pathlib import Path


class ContactRoster:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._contacts = self._read()

    def _read(self) -> set[str]:
        if not self._path.exists():
            return set()
        out: set[str] = set()
        for line in self._path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line:
                out.add(line)
        return out

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        body = "".join(f"{c}\n" for c in sorted(self._contacts))
        self._path.write_text(body, encoding="utf-8")
        self._path.chmod(0o600)

    def add(self, contact: str) -> bool:
        with self._lock:
            if contact in self._contacts:
                return False
            self._contacts.add(contact)
            self._write()
            return True

    def remove(self, contact: str) -> bool:
        with self._lock:
            if contact not in self._contacts:
                return False
            self._contacts.discard(contact)
            self._write()
            return True

    def __contains__(self, contact: object) -> bool:
        return contact in self._contacts

    def __len__(self) -> int:
        return len(self._contacts)

    def contacts(self) -> list[str]:
        with self._lock:
            return sorted(self._contacts)
