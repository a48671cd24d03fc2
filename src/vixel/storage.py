"""Local JSON storage for viewer preferences and the detected region."""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _default_data_path() -> Path:
    data_dir = os.environ.get("VIXEL_DATA_DIR")
    base = Path(data_dir) if data_dir else Path.cwd() / "data"
    return base / "vixel.json"


DATA_PATH = _default_data_path()

_lock = threading.Lock()


def _read_document() -> dict[str, Any]:
    if not DATA_PATH.exists():
        return {}
    try:
        document = json.loads(DATA_PATH.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("Stored data at %s is not valid JSON; ignoring it.", DATA_PATH)
        return {}
    return document if isinstance(document, dict) else {}


def _write_document(document: dict[str, Any]) -> None:
    DATA_PATH.parent.mkdir(parents=True, exist_ok=True)
    temp_path = DATA_PATH.with_suffix(".tmp")
    temp_path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
    temp_path.replace(DATA_PATH)


def fetch_values(keys: Iterable[str] | None = None) -> dict[str, Any]:
    """Retrieve stored values as a mapping of key to value."""

    with _lock:
        document = _read_document()
    if keys is None:
        return document

    key_list = [str(key).strip() for key in keys]
    return {key: document[key] for key in key_list if key and key in document}


def store_values(values: dict[str, Any]) -> None:
    """Persist the provided values, removing keys whose value is ``None``."""

    if not values:
        return

    with _lock:
        document = _read_document()
        for key, value in values.items():
            normalized_key = str(key).strip()
            if not normalized_key:
                continue
            if value is None or (isinstance(value, str) and not value.strip()):
                document.pop(normalized_key, None)
            else:
                document[normalized_key] = value
        _write_document(document)


def remove_values(keys: Iterable[str]) -> None:
    store_values({key: None for key in keys})


__all__ = ["DATA_PATH", "fetch_values", "remove_values", "store_values"]
