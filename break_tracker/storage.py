from __future__ import annotations

import logging
import sqlite3
from typing import Protocol

from .db import Database


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class ScopedStore:
    """Key/value view over one scope of the local database.

    Storage failures never escape: reads degrade to "absent" and writes are
    dropped after logging, so a broken database only costs local state.
    """

    def __init__(self, db: Database, scope: str, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.scope = scope
        self.logger = logger or logging.getLogger(__name__)

    def get(self, key: str) -> str | None:
        try:
            return self.db.get_value(self.scope, key)
        except sqlite3.Error:
            self.logger.exception("Read failed: scope=%s key=%s", self.scope, key)
            return None

    def set(self, key: str, value: str) -> None:
        try:
            self.db.set_value(self.scope, key, value)
        except sqlite3.Error:
            self.logger.exception("Write failed: scope=%s key=%s", self.scope, key)

    def remove(self, key: str) -> None:
        try:
            self.db.delete_value(self.scope, key)
        except sqlite3.Error:
            self.logger.exception("Delete failed: scope=%s key=%s", self.scope, key)
