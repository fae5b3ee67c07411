"""
Pytest configuration and shared fixtures for the smilex tests.

Every test runs against its own JSON store in ``tmp_path`` with debouncing
off, so writes land on disk immediately and nothing leaks between tests.
"""
import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest


def pytest_configure():
    """
    Put `backend/` on sys.path so `smilex` imports without an editable
    install, and keep the background poller off.
    """
    os.environ.setdefault("SMILEX_BACKGROUND", "0")
    root = Path(__file__).resolve().parents[1]
    backend = root / "backend"
    if backend.exists():
        sys.path.insert(0, str(backend))


@pytest.fixture(autouse=True)
def store(tmp_path):
    from smilex import fund_service, storage, tracker

    previous = storage.get_store()
    test_store = storage.use_store(storage.JsonStore(str(tmp_path / "store.json"), debounce=0))
    fund_service.clear_cache()
    tracker.reset_state()
    yield test_store
    storage.use_store(previous)
    fund_service.clear_cache()


def fake_response(status_code=200, text="", json_data=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp


REALTIME_TEXT = (
    'jsonpgz({"fundcode":"000001","name":"华夏成长混合","jzrq":"2024-05-10",'
    '"dwjz":"1.5432","gsz":"1.5678","gszzl":"1.60","gztime":"2024-05-11 14:30"});'
)

SEARCH_TEXT = (
    'SuggestData_1715400000000({"ErrCode":0,"ErrMsg":null,"Datas":[{'
    '"CODE":"000001","NAME":"华夏成长混合","JP":"HXCZHH","CATEGORY":700,'
    '"CATEGORYDESC":"基金","FundBaseInfo":{"FCODE":"000001","SHORTNAME":"华夏成长混合",'
    '"FTYPE":"混合型-偏股","JJGS":"华夏基金","JJJL":"巩怀志","DWJZ":1.5432,'
    '"FSRQ":"2024-05-10","ISBUY":"1","MINSG":""},'
    '"ZTJJInfo":[{"TTYPENAME":"医药"},{"TTYPENAME":"消费"}]}]})'
)


@pytest.fixture
def fake_response_factory():
    return fake_response
