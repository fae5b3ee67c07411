"""
File-system based JSON key-value store.

Plays the role browser local storage plays for the dashboard: every piece of
user state lives under a prefixed key in one JSON file. Reads go through an
in-memory cache; holdings, wallets and settings are written through a short
debounce so bursts of edits collapse into one file write (last write wins).
"""
import json
import os
import tempfile
import threading
from typing import Any, Dict, Optional

from . import config

KEYS = {
    "USER_HOLDINGS": "userHoldings",
    "WALLETS": "wallets",
    "SETTINGS": "settings",
    "MARKET_INDICES": "marketIndices",
    "PRECIOUS_METALS": "preciousMetals",
    "FUNDS": "funds",
    "TRACKED_FUNDS": "trackedFunds",
}


def storage_key(name: str) -> str:
    """Full storage key, e.g. ``smilex-fund:wallets``."""
    return f"{config.STORAGE_PREFIX}:{name}"


class JsonStore:
    def __init__(self, path: str, debounce: float = config.SAVE_DEBOUNCE):
        self.path = path
        self.debounce = debounce
        self._cache: Dict[str, Any] = {}
        self._pending: Dict[str, threading.Timer] = {}
        self._lock = threading.RLock()

    # ── File I/O ─────────────────────────────────────────

    def _load_file(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            return {}

    def _write_file(self, key: str, value: Any):
        with self._lock:
            try:
                data = self._load_file()
            except (OSError, json.JSONDecodeError) as e:
                print(f"[Store] Unreadable store file, rewriting: {e}")
                data = {}
            data[key] = value
            directory = os.path.dirname(self.path) or "."
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2, default=str)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise

    # ── Public API ───────────────────────────────────────

    def read(self, key: str, default: Any = None) -> Any:
        """Cached value, else file value, else ``default``."""
        with self._lock:
            if key in self._cache:
                return self._cache[key]
            try:
                data = self._load_file()
            except (OSError, json.JSONDecodeError) as e:
                print(f"[Store] Error reading {key}: {e}")
                return default
            if key in data and data[key] is not None:
                self._cache[key] = data[key]
                return data[key]
        return default

    def write(self, key: str, value: Any):
        """Write-through save."""
        with self._lock:
            timer = self._pending.pop(key, None)
            if timer:
                timer.cancel()
            self._cache[key] = value
            try:
                self._write_file(key, value)
            except (OSError, TypeError, ValueError) as e:
                print(f"[Store] Error saving {key}: {e}")

    def save_debounced(self, key: str, value: Any):
        """Update the cache now, write the file after the debounce window."""
        with self._lock:
            self._cache[key] = value
            timer = self._pending.pop(key, None)
            if timer:
                timer.cancel()
            if self.debounce <= 0:
                self.write(key, value)
                return
            timer = threading.Timer(self.debounce, self._flush_key, args=(key,))
            timer.daemon = True
            self._pending[key] = timer
            timer.start()

    def _flush_key(self, key: str):
        with self._lock:
            self._pending.pop(key, None)
            if key in self._cache:
                self.write(key, self._cache[key])

    def flush(self):
        """Perform every pending debounced write immediately."""
        with self._lock:
            keys = list(self._pending.keys())
            for key in keys:
                self._pending.pop(key).cancel()
                if key in self._cache:
                    self.write(key, self._cache[key])
        if keys:
            print(f"[Store] Flushed {len(keys)} pending writes")

    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def clear_cache(self, key: Optional[str] = None):
        with self._lock:
            if key:
                self._cache.pop(key, None)
            else:
                self._cache.clear()


store = JsonStore(config.STORE_FILE)


def use_store(new_store: JsonStore) -> JsonStore:
    """Swap the module-level store (tests point it at a temp file)."""
    global store
    store = new_store
    return store


def get_store() -> JsonStore:
    return store
