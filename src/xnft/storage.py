"""
Persisted bridge state over pluggable key-value backends.

State layout (one namespace per table)::

    nonces   sender handle (hex)          -> nonce
    reroll   "<direction>:<domain>:<id>"  -> mapped id
    routers  domain                       -> enrolled router handle (hex)
    gas      "<domain>:<action>"          -> gas limit
    applied  operation id (hex)            -> origin domain
    meta     name                         -> JSON value (owner, whole unit, ...)

Escrow is not stored here: custody lives in the token's own balances.

Usage::

    backend = get_storage_backend("sqlite", db_path="/data/bridge.db")
    store = BridgeStore(backend)
    bridge = NFTBridge(config, token, mailbox, store=store)
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, Optional, Tuple

from .errors import StorageError

logger = logging.getLogger("xnft.storage")


# ── Abstract interface ─────────────────────────────────────────────────

class StorageBackend(ABC):
    """Minimal namespaced key-value interface.

    Implementations MUST support every name in ``NAMESPACES`` and make
    buffered writes durable on ``commit``.
    """

    NAMESPACES = ("nonces", "reroll", "routers", "gas", "applied", "meta")

    @abstractmethod
    def get(self, namespace: str, key: str) -> Optional[str]:
        """Retrieve a value by key from *namespace*, or ``None``."""

    @abstractmethod
    def put(self, namespace: str, key: str, value: str) -> None:
        """Write *value* under *key* in *namespace*."""

    @abstractmethod
    def delete(self, namespace: str, key: str) -> None:
        """Remove *key* from *namespace*."""

    @abstractmethod
    def has(self, namespace: str, key: str) -> bool:
        """Return ``True`` if *key* exists in *namespace*."""

    @abstractmethod
    def iterate(self, namespace: str) -> Iterator[Tuple[str, str]]:
        """Yield all ``(key, value)`` pairs in *namespace*."""

    @abstractmethod
    def commit(self) -> None:
        """Flush any buffered writes to durable storage."""

    @abstractmethod
    def close(self) -> None:
        """Release resources held by the backend."""

    def get_json(self, namespace: str, key: str) -> Optional[Any]:
        raw = self.get(namespace, key)
        if raw is None:
            return None
        return json.loads(raw)

    def put_json(self, namespace: str, key: str, obj: Any) -> None:
        self.put(namespace, key, json.dumps(obj, default=str))

    @property
    def name(self) -> str:
        return self.__class__.__name__


# ── SQLite backend ─────────────────────────────────────────────────────

class SQLiteBackend(StorageBackend):
    """SQLite-based storage, one table per namespace."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._init_tables()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {db_path}: {e}") from e
        logger.info("SQLite storage backend opened: %s", db_path)

    def _init_tables(self):
        for ns in self.NAMESPACES:
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS [{ns}] (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
        self._conn.commit()

    def get(self, namespace: str, key: str) -> Optional[str]:
        row = self._conn.execute(
            f"SELECT value FROM [{namespace}] WHERE key = ?", (key,)
        ).fetchone()
        return row[0] if row else None

    def put(self, namespace: str, key: str, value: str) -> None:
        self._conn.execute(
            f"INSERT OR REPLACE INTO [{namespace}] (key, value) VALUES (?, ?)",
            (key, value),
        )

    def delete(self, namespace: str, key: str) -> None:
        self._conn.execute(f"DELETE FROM [{namespace}] WHERE key = ?", (key,))

    def has(self, namespace: str, key: str) -> bool:
        row = self._conn.execute(
            f"SELECT 1 FROM [{namespace}] WHERE key = ? LIMIT 1", (key,)
        ).fetchone()
        return row is not None

    def iterate(self, namespace: str) -> Iterator[Tuple[str, str]]:
        cursor = self._conn.execute(f"SELECT key, value FROM [{namespace}]")
        yield from cursor.fetchall()

    def commit(self) -> None:
        try:
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Commit to {self._db_path} failed: {e}") from e

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None  # type: ignore[assignment]
            logger.info("SQLite storage backend closed")


# ── In-memory backend ──────────────────────────────────────────────────

class MemoryBackend(StorageBackend):
    """Ephemeral in-memory backend."""

    def __init__(self):
        self._data: Dict[str, Dict[str, str]] = {ns: {} for ns in self.NAMESPACES}

    def get(self, namespace: str, key: str) -> Optional[str]:
        return self._data[namespace].get(key)

    def put(self, namespace: str, key: str, value: str) -> None:
        self._data[namespace][key] = value

    def delete(self, namespace: str, key: str) -> None:
        self._data[namespace].pop(key, None)

    def has(self, namespace: str, key: str) -> bool:
        return key in self._data[namespace]

    def iterate(self, namespace: str) -> Iterator[Tuple[str, str]]:
        yield from list(self._data[namespace].items())

    def commit(self) -> None:
        pass

    def close(self) -> None:
        self._data.clear()


_BACKENDS = {
    "sqlite": SQLiteBackend,
    "memory": MemoryBackend,
}


def get_storage_backend(name: str, **kwargs) -> StorageBackend:
    """Instantiate a storage backend by name (``"sqlite"`` or ``"memory"``)."""
    name = name.lower().strip()
    cls = _BACKENDS.get(name)
    if cls is None:
        raise StorageError(
            f"Unknown storage backend '{name}'. "
            f"Available: {', '.join(sorted(_BACKENDS))}"
        )
    return cls(**kwargs)


# ── Bridge state mapping ───────────────────────────────────────────────

class BridgeStore:
    """Reads and writes the bridge's persisted state through a backend."""

    def __init__(self, backend: Optional[StorageBackend] = None):
        self.backend = backend or MemoryBackend()

    @classmethod
    def from_config(cls, config) -> "BridgeStore":
        if config.storage == "sqlite":
            return cls(get_storage_backend("sqlite", db_path=config.storage_path))
        return cls(get_storage_backend(config.storage))

    # -- load --------------------------------------------------------------

    def load(self) -> Dict[str, Any]:
        b = self.backend
        reroll: Dict[Tuple[str, int, int], int] = {}
        for key, value in b.iterate("reroll"):
            direction, domain, source = key.split(":")
            reroll[(direction, int(domain), int(source))] = int(value)
        gas: Dict[int, Dict[int, int]] = {}
        for key, value in b.iterate("gas"):
            domain, action = key.split(":")
            gas.setdefault(int(domain), {})[int(action)] = int(value)
        return {
            "nonces": {bytes.fromhex(k): int(v) for k, v in b.iterate("nonces")},
            "reroll": reroll,
            "routers": {int(k): bytes.fromhex(v) for k, v in b.iterate("routers")},
            "gas": gas,
            "applied": {bytes.fromhex(k): int(v) for k, v in b.iterate("applied")},
            "meta": {k: json.loads(v) for k, v in b.iterate("meta")},
        }

    def is_empty(self) -> bool:
        return not any(
            any(True for _ in self.backend.iterate(ns))
            for ns in StorageBackend.NAMESPACES
        )

    # -- save --------------------------------------------------------------

    def save(self, state: Dict[str, Any]) -> None:
        """Replace the stored state with *state* and commit."""
        tables = {
            "nonces": {k.hex(): str(v) for k, v in state["nonces"].items()},
            "reroll": {
                f"{direction}:{domain}:{source}": str(mapped)
                for (direction, domain, source), mapped in state["reroll"].items()
            },
            "routers": {str(k): v.hex() for k, v in state["routers"].items()},
            "gas": {
                f"{domain}:{action}": str(g)
                for domain, actions in state["gas"].items()
                for action, g in actions.items()
            },
            "applied": {k.hex(): str(v) for k, v in state.get("applied", {}).items()},
            "meta": {k: json.dumps(v) for k, v in state["meta"].items()},
        }
        b = self.backend
        for ns, rows in tables.items():
            for key, _ in list(b.iterate(ns)):
                if key not in rows:
                    b.delete(ns, key)
            for key, value in rows.items():
                b.put(ns, key, value)
        b.commit()

    def close(self) -> None:
        self.backend.close()
