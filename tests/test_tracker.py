"""Tests for tracked funds and the polling refresh."""
from datetime import datetime
from unittest.mock import patch

import pytest

from conftest import REALTIME_TEXT
from smilex import config, fund_catalogue, fund_service, tracker
from smilex.models import FundRealTimeData


def _fund(code, rate, estimate=1.0):
    return FundRealTimeData(code=code, name=f"F{code}", change_rate=rate, estimated_value=estimate)


def _fetch_batch(codes):
    return [_fund(c, float(int(c) % 7)) for c in codes if c != "999999"]


class TestParseCodeInput:
    def test_full_width_commas(self):
        assert tracker.parse_code_input("000001，110022, 003095") == ["000001", "110022", "003095"]

    def test_invalid_and_duplicate_codes_dropped(self):
        assert tracker.parse_code_input("abc,12345, 000001,000001,") == ["000001"]

    def test_empty(self):
        assert tracker.parse_code_input("") == []


class TestAddRemove:
    def test_add_codes(self):
        with patch.object(fund_service, "fetch_batch_realtime", side_effect=_fetch_batch):
            result = tracker.add_codes("000001,999999")
        assert [f["code"] for f in result["added"]] == ["000001"]
        assert result["failed"] == ["999999"]
        assert [f.code for f in tracker.get_tracked()] == ["000001"]

    def test_already_tracked_skipped(self):
        tracker.save_tracked([_fund("000001", 1)])
        with patch.object(fund_service, "fetch_batch_realtime", side_effect=_fetch_batch) as m:
            result = tracker.add_codes("000001，110022")
        m.assert_called_once_with(["110022"])
        assert result["skipped"] == ["000001"]
        assert len(tracker.get_tracked()) == 2

    def test_all_tracked_raises(self):
        tracker.save_tracked([_fund("000001", 1)])
        with pytest.raises(ValueError):
            tracker.add_codes("000001")

    def test_no_valid_code_raises(self):
        with pytest.raises(ValueError):
            tracker.add_codes("hello")

    def test_remove(self):
        tracker.save_tracked([_fund("000001", 1), _fund("110022", 2)])
        assert tracker.remove("000001")
        assert not tracker.remove("000001")
        assert [f.code for f in tracker.get_tracked()] == ["110022"]


class TestSorting:
    def test_default_is_change_rate_desc(self):
        tracker.save_tracked([_fund("000001", 1.0), _fund("110022", -2.0), _fund("003095", 3.5)])
        assert [f.code for f in tracker.sorted_funds()] == ["003095", "000001", "110022"]

    def test_camel_case_field_and_asc(self):
        funds = [_fund("000001", 0, 2.0), _fund("110022", 0, 1.0)]
        assert [f.code for f in tracker.sorted_funds("estimatedValue", "asc", funds)] == ["110022", "000001"]

    def test_unknown_field_keeps_order(self):
        funds = [_fund("000001", 0), _fund("110022", 5)]
        assert tracker.sorted_funds("name", "desc", funds) == funds


class TestTradingHours:
    @pytest.mark.parametrize("hour,expected", [(9, False), (10, True), (14, True), (15, False), (22, False)])
    def test_window(self, hour, expected):
        assert tracker.is_trading_hours(datetime(2024, 5, 13, hour, 30)) is expected


class TestRefresh:
    def test_refresh_empty_raises(self):
        with pytest.raises(ValueError):
            tracker.refresh()

    def test_refresh_replaces_list(self):
        tracker.save_tracked([_fund("000001", 0)])
        with patch("smilex.fund_service._requests.get") as mock_get:
            mock_get.return_value.status_code = 200
            mock_get.return_value.text = REALTIME_TEXT
            fresh = tracker.refresh()
        assert fresh[0].change_rate == 1.60
        assert tracker.get_tracked()[0].estimated_value == 1.5678
        assert tracker.status()["last_refresh"] > 0

    def test_tick_outside_trading_hours_does_nothing(self):
        tracker.save_tracked([_fund("000001", 0)])
        with patch.object(tracker, "refresh") as m:
            assert not tracker.tick(now=1000, clock=datetime(2024, 5, 13, 20, 0))
        m.assert_not_called()
        assert tracker.status()["enabled"] is False

    def test_tick_empty_list_does_nothing(self):
        with patch.object(tracker, "refresh") as m:
            assert not tracker.tick(now=1000, clock=datetime(2024, 5, 13, 11, 0))
        m.assert_not_called()

    def test_tick_refreshes_on_enable_then_on_interval(self):
        tracker.save_tracked([_fund("000001", 0)])
        clock = datetime(2024, 5, 13, 11, 0)
        with patch.object(tracker, "refresh") as refresh, \
                patch.object(fund_catalogue, "refresh_valuations") as catalogue:
            assert tracker.tick(now=1000, clock=clock)           # just enabled
            assert not tracker.tick(now=1060, clock=clock)       # within interval
            assert tracker.tick(now=1000 + config.TRACKER_REFRESH_INTERVAL, clock=clock)
        assert refresh.call_count == 2
        assert catalogue.call_count == 2
        assert tracker.status()["enabled"] is True
