"""Key-value persistence for the envelope ledger.

Every backend exposes ``get``/``set``/``commit``. Services stage all writes of
one operation with ``set`` and call ``commit`` once; an operation that fails
never calls ``set``, so nothing it touched becomes visible.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import KeyValueEntry

logger = logging.getLogger(__name__)

CATEGORY_FUNDING_HISTORY = "categoryFundingHistory"
CATEGORY_TRANSFERS = "categoryTransfers"
MONTHLY_BUDGET = "monthlyBudget"
PAYCHECKS = "paychecks"
CATEGORIES = "categories"
PLANNING_ITEMS = "planningItems"
ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"


class KeyValueStore:
    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def commit(self) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def commit(self) -> None:
        pass


class JSONFileStore(KeyValueStore):
    """All keys in one JSON document, replaced atomically on commit.

    A file that does not parse is renamed to ``*.corrupt`` and the store
    starts empty, so the damaged ledger is never overwritten.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, UnicodeDecodeError):
            self._set_aside()
            return {}
        if not isinstance(data, dict):
            self._set_aside()
            return {}
        return data

    def _set_aside(self) -> None:
        corrupt = self.path.with_name(self.path.name + ".corrupt")
        self.path.replace(corrupt)
        logger.warning(f"store_load_failed: path={self.path} moved_to={corrupt}")

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def commit(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(self._data, handle, indent=2, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            tmp.replace(self.path)
        finally:
            tmp.unlink(missing_ok=True)


class SQLStore(KeyValueStore):
    """Keys as rows of ``kv_entries``; commit commits the session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: str, default: Any = None) -> Any:
        # Column select bypasses the identity map.
        payload = self.session.scalar(
            select(KeyValueEntry.value_json).where(KeyValueEntry.key == key)
        )
        if payload is None:
            return default
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning(f"store_entry_corrupt: key={key}")
            return default

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, sort_keys=True)
        entry = self.session.get(KeyValueEntry, key)
        if entry is None:
            self.session.add(KeyValueEntry(key=key, value_json=payload))
        else:
            entry.value_json = payload
        self.session.flush()

    def commit(self) -> None:
        self.session.commit()
