from __future__ import annotations

import json
import logging
import os
import tempfile
import time
import uuid
from contextlib import contextmanager
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol

from party_wizard.domain.messages import ConfirmationRequest, WizardMessage
from party_wizard.domain.models import WizardSession, WizardStep
from party_wizard.domain.serialization import (
    deserialize_confirmation,
    deserialize_message,
    deserialize_session,
    iso_millis,
    serialize_confirmation,
    serialize_message,
)
from party_wizard.errors import PersistenceError, SessionNotFoundError

__workflow_role__ = "Database"


LOCK_TIMEOUT = 5.0
LOCK_SLEEP = 0.1

logger = logging.getLogger(__name__)


class FileLock:
    """Coarse-grained filesystem lock guarding the JSON session file."""

    def __init__(self, path: Path, timeout: float = LOCK_TIMEOUT, sleep: float = LOCK_SLEEP) -> None:
        self.path = path
        self.timeout = timeout
        self.sleep = sleep
        self.fd: Optional[int] = None

    def acquire(self) -> None:
        """Block until the lock file can be created or raise on timeout."""

        deadline = time.time() + self.timeout
        while True:
            try:
                self.fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                os.write(self.fd, str(os.getpid()).encode("utf-8"))
                return
            except FileExistsError:
                if time.time() >= deadline:
                    raise TimeoutError(f"Could not acquire lock {self.path}")
                time.sleep(self.sleep)

    def release(self) -> None:
        if self.fd is not None:
            os.close(self.fd)
            self.fd = None
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def get_default_db() -> Dict[str, Any]:
    """Baseline JSON layout for an empty session database."""

    return {"sessions": {}, "messages": {}, "confirmations": {}, "recipes": {}}


def lock_path_for(path: Path) -> Path:
    path = Path(path)
    return path.with_name(f".{path.name}.lock")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Store contract
# ---------------------------------------------------------------------------


class SessionStore(Protocol):
    """Row-level persistence contract for wizard sessions."""

    def create(self, owner_id: str) -> WizardSession: ...

    def get(self, session_id: str, owner_id: str) -> WizardSession: ...

    def find_active(self, owner_id: str) -> Optional[WizardSession]: ...

    def update_partial(self, session_id: str, owner_id: str, fields: Dict[str, Any]) -> WizardSession: ...

    def abandon_active(self, owner_id: str) -> int: ...

    def append_message(self, session_id: str, step: WizardStep, message: WizardMessage) -> None: ...

    def list_messages(self, session_id: str, step: WizardStep) -> List[WizardMessage]: ...

    def load_pending_confirmation(self, session_id: str) -> Optional[ConfirmationRequest]: ...

    def save_pending_confirmation(self, session_id: str, request: Optional[ConfirmationRequest]) -> None: ...

    def list_recipes(self, owner_id: str) -> List[Dict[str, Any]]: ...


class _TableStore:
    """Shared row logic over the dict layout from ``get_default_db``.

    Subclasses provide ``_transaction`` which yields the live tables and
    persists them when the block exits without an exception.
    """

    @contextmanager
    def _transaction(self, *, write: bool = False) -> Iterator[Dict[str, Any]]:
        raise NotImplementedError
        yield {}

    # -- sessions ---------------------------------------------------------

    def create(self, owner_id: str) -> WizardSession:
        now = iso_millis(_now())
        row = {
            "id": str(uuid.uuid4()),
            "owner_id": owner_id,
            "current_step": WizardStep.PARTY_INFO.value,
            "furthest_step_index": 0,
            "status": "active",
            "party_info": None,
            "guest_list": [],
            "menu_plan": None,
            "timeline": None,
            "party_id": None,
            "created_at": now,
            "updated_at": now,
        }
        with self._transaction(write=True) as db:
            db["sessions"][row["id"]] = row
        logger.info("[WIZARD][DB] created session=%s owner=%s", row["id"], owner_id)
        return deserialize_session(row)

    @staticmethod
    def _owned_row(db: Dict[str, Any], session_id: str, owner_id: str) -> Dict[str, Any]:
        row = db["sessions"].get(session_id)
        if row is None or row.get("owner_id") != owner_id:
            raise SessionNotFoundError(session_id, owner_id)
        return row

    def get(self, session_id: str, owner_id: str) -> WizardSession:
        with self._transaction() as db:
            row = deepcopy(self._owned_row(db, session_id, owner_id))
        return deserialize_session(row)

    def find_active(self, owner_id: str) -> Optional[WizardSession]:
        with self._transaction() as db:
            rows = [
                deepcopy(row)
                for row in db["sessions"].values()
                if row.get("owner_id") == owner_id and row.get("status") == "active"
            ]
        if not rows:
            return None
        rows.sort(key=lambda row: row.get("updated_at") or "", reverse=True)
        return deserialize_session(rows[0])

    def update_partial(self, session_id: str, owner_id: str, fields: Dict[str, Any]) -> WizardSession:
        """Apply JSON-safe ``fields`` to an owned session row.

        The step watermark only moves forward; a lower value is ignored.
        """
        with self._transaction(write=True) as db:
            row = self._owned_row(db, session_id, owner_id)
            for key, value in fields.items():
                if key in ("id", "owner_id", "created_at"):
                    continue
                if key == "furthest_step_index":
                    value = max(int(row.get("furthest_step_index") or 0), int(value))
                row[key] = value
            row["updated_at"] = iso_millis(_now())
            snapshot = deepcopy(row)
        return deserialize_session(snapshot)

    def abandon_active(self, owner_id: str) -> int:
        count = 0
        with self._transaction(write=True) as db:
            for row in db["sessions"].values():
                if row.get("owner_id") == owner_id and row.get("status") == "active":
                    row["status"] = "abandoned"
                    row["updated_at"] = iso_millis(_now())
                    db["confirmations"].pop(row["id"], None)
                    count += 1
        if count:
            logger.info("[WIZARD][DB] abandoned %s active session(s) owner=%s", count, owner_id)
        return count

    # -- messages ---------------------------------------------------------

    def append_message(self, session_id: str, step: WizardStep, message: WizardMessage) -> None:
        with self._transaction(write=True) as db:
            if session_id not in db["sessions"]:
                raise SessionNotFoundError(session_id)
            per_step = db["messages"].setdefault(session_id, {})
            per_step.setdefault(step.value, []).append(serialize_message(message))

    def list_messages(self, session_id: str, step: WizardStep) -> List[WizardMessage]:
        with self._transaction() as db:
            rows = deepcopy(db["messages"].get(session_id, {}).get(step.value, []))
        return [deserialize_message(row) for row in rows]

    # -- confirmation -----------------------------------------------------

    def load_pending_confirmation(self, session_id: str) -> Optional[ConfirmationRequest]:
        with self._transaction() as db:
            row = deepcopy(db["confirmations"].get(session_id))
        return deserialize_confirmation(row)

    def save_pending_confirmation(self, session_id: str, request: Optional[ConfirmationRequest]) -> None:
        with self._transaction(write=True) as db:
            if request is None:
                db["confirmations"].pop(session_id, None)
            else:
                db["confirmations"][session_id] = serialize_confirmation(request)

    # -- recipe library ---------------------------------------------------

    def list_recipes(self, owner_id: str) -> List[Dict[str, Any]]:
        with self._transaction() as db:
            return deepcopy(db["recipes"].get(owner_id, []))

    def add_recipe(self, owner_id: str, recipe: Dict[str, Any]) -> Dict[str, Any]:
        """Add a recipe to the owner's library (seeding and tests)."""
        entry = dict(recipe)
        entry.setdefault("id", str(uuid.uuid4()))
        with self._transaction(write=True) as db:
            db["recipes"].setdefault(owner_id, []).append(entry)
        return entry


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class InMemorySessionStore(_TableStore):
    """Process-local store used in tests and the dev default."""

    def __init__(self) -> None:
        self._db = get_default_db()

    @contextmanager
    def _transaction(self, *, write: bool = False) -> Iterator[Dict[str, Any]]:
        yield self._db


class JsonSessionStore(_TableStore):
    """Single JSON file guarded by a sibling lock file and saved atomically."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock_path = lock_path_for(self.path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return get_default_db()
        with self.path.open("r", encoding="utf-8") as fh:
            db = json.load(fh)
        for key, default in get_default_db().items():
            if not isinstance(db.get(key), type(default)):
                db[key] = default
        return db

    def _write(self, db: Dict[str, Any]) -> None:
        tmp_fd, tmp_path = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as fh:
                json.dump(db, fh, indent=2, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    @contextmanager
    def _transaction(self, *, write: bool = False) -> Iterator[Dict[str, Any]]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with FileLock(self.lock_path):
                db = self._read()
                yield db
                if write:
                    self._write(db)
        except (OSError, TimeoutError, ValueError) as exc:
            logger.error("[WIZARD][DB] persistence failure path=%s: %s", self.path, exc)
            raise PersistenceError(f"Session store unavailable: {exc}") from exc


def build_store(kind: str, path: Optional[Path] = None) -> SessionStore:
    if kind == "memory":
        return InMemorySessionStore()
    if path is None:
        raise ValueError("JsonSessionStore requires a path")
    return JsonSessionStore(path)


__all__ = [
    "FileLock",
    "SessionStore",
    "InMemorySessionStore",
    "JsonSessionStore",
    "build_store",
    "get_default_db",
    "lock_path_for",
]
