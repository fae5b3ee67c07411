"""Tests for the JSON key-value store."""
import json
import time

from smilex import storage
from smilex.storage import JsonStore


def test_storage_key_is_prefixed():
    assert storage.storage_key("wallets") == "smilex-fund:wallets"


def test_read_returns_default_when_missing(tmp_path):
    s = JsonStore(str(tmp_path / "s.json"), debounce=0)
    assert s.read("nope", [1]) == [1]


def test_write_persists_to_file(tmp_path):
    path = tmp_path / "s.json"
    s = JsonStore(str(path), debounce=0)
    s.write("k", {"a": 1})
    assert json.loads(path.read_text(encoding="utf-8")) == {"k": {"a": 1}}
    # A fresh store sees the same data
    assert JsonStore(str(path)).read("k") == {"a": 1}


def test_unicode_is_kept_readable(tmp_path):
    path = tmp_path / "s.json"
    JsonStore(str(path), debounce=0).write("w", "默认钱包")
    assert "默认钱包" in path.read_text(encoding="utf-8")


def test_corrupt_file_falls_back_to_default(tmp_path):
    path = tmp_path / "s.json"
    path.write_text("{not json", encoding="utf-8")
    s = JsonStore(str(path), debounce=0)
    assert s.read("k", "fallback") == "fallback"
    s.write("k", 1)
    assert s.read("k") == 1


def test_debounced_writes_collapse(tmp_path):
    path = tmp_path / "s.json"
    s = JsonStore(str(path), debounce=0.05)
    s.save_debounced("k", 1)
    s.save_debounced("k", 2)
    assert s.read("k") == 2          # cache is current immediately
    assert s.has_pending()
    time.sleep(0.3)
    assert not s.has_pending()
    assert json.loads(path.read_text(encoding="utf-8"))["k"] == 2


def test_flush_writes_pending(tmp_path):
    path = tmp_path / "s.json"
    s = JsonStore(str(path), debounce=60)
    s.save_debounced("k", "v")
    assert not path.exists()
    s.flush()
    assert not s.has_pending()
    assert json.loads(path.read_text(encoding="utf-8"))["k"] == "v"


def test_use_store_swaps_module_store(tmp_path):
    custom = JsonStore(str(tmp_path / "other.json"), debounce=0)
    previous = storage.get_store()
    try:
        assert storage.use_store(custom) is custom
        assert storage.get_store() is custom
    finally:
        storage.use_store(previous)
