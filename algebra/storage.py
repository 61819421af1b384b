"""
SymCore: local JSON storage for engine settings and computation history.

Data is persisted in ``<project>/data/symcore.json``.
"""

import json
import logging
import os
import time
import uuid
from datetime import datetime

logger = logging.getLogger(__name__)

_DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "data")
_DATA_FILE = os.path.join(_DATA_DIR, "symcore.json")

_HISTORY_LIMIT = 200

# ── Default settings (used when nothing has been saved yet) ─────────────
DEFAULT_SETTINGS = {
    "tolerance": 1e-9,            # precision cutoff for float comparisons
    "max_depth": 100,             # deepest tree the parser accepts
    "max_passes": 50,             # simplifier fixpoint cap
    "max_iterations": 100,        # Newton polishing cap for polynomial roots
    "max_parts_depth": 3,         # nested integration-by-parts attempts
    "precise_decimals": False,    # decimal literals become decimal.Decimal
    "decimal_precision": 28,
    "complex_mode": False,        # keep complex roots / allow ln(-1), sqrt(-1)
    "caret_is_xor": False,        # '^' as bitwise xor, '**' stays power
    "use_constants": True,        # unbound pi and e evaluate to their values
    "log_level": "WARNING",
}


def _ensure_dir() -> None:
    os.makedirs(_DATA_DIR, exist_ok=True)


def _empty_db() -> dict:
    return {"settings": dict(DEFAULT_SETTINGS), "history": []}


def _load_db() -> dict:
    _ensure_dir()
    if os.path.exists(_DATA_FILE):
        try:
            with open(_DATA_FILE, "r", encoding="utf-8") as f:
                db = json.load(f)
        except (json.JSONDecodeError, OSError):
            logger.warning("Ignoring unreadable settings file %s", _DATA_FILE)
            return _empty_db()
        if not isinstance(db, dict):
            return _empty_db()
        db.setdefault("settings", dict(DEFAULT_SETTINGS))
        db.setdefault("history", [])
        return db
    return _empty_db()


def _save_db(db: dict) -> None:
    _ensure_dir()
    with open(_DATA_FILE, "w", encoding="utf-8") as f:
        json.dump(db, f, indent=2, ensure_ascii=False)


# ── Settings ─────────────────────────────────────────────────────────────

def get_settings() -> dict:
    """Return the stored settings merged over ``DEFAULT_SETTINGS``."""
    db = _load_db()
    merged = dict(DEFAULT_SETTINGS)
    merged.update(db.get("settings", {}))
    return merged


def save_settings(settings: dict) -> None:
    """Persist *settings*. Keys that are not known settings are dropped."""
    db = _load_db()
    current = dict(DEFAULT_SETTINGS)
    current.update(db.get("settings", {}))
    for key, value in settings.items():
        if key in DEFAULT_SETTINGS:
            current[key] = value
        else:
            logger.debug("Dropping unknown setting %r", key)
    db["settings"] = current
    _save_db(db)


def reset_settings() -> None:
    db = _load_db()
    db["settings"] = dict(DEFAULT_SETTINGS)
    _save_db(db)


# ── History ──────────────────────────────────────────────────────────────

def add_history(operation: str, expression: str, result: str) -> str:
    """Record a computation (newest first) and return its id."""
    db = _load_db()
    record = {
        "id": uuid.uuid4().hex[:12],
        "operation": operation,
        "expression": expression,
        "result": result,
        "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "epoch": time.time(),
    }
    db["history"].insert(0, record)
    db["history"] = db["history"][:_HISTORY_LIMIT]
    _save_db(db)
    return record["id"]


def get_history(operation: str = None) -> list[dict]:
    """Return history records, optionally only those of one *operation*."""
    history = _load_db().get("history", [])
    if operation:
        return [h for h in history if h.get("operation") == operation]
    return history


def clear_history() -> None:
    db = _load_db()
    db["history"] = []
    _save_db(db)
