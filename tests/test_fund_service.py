"""Tests for the fund valuation / search / history proxy."""
from datetime import date
from unittest.mock import patch

import pytest
import requests

from conftest import REALTIME_TEXT, SEARCH_TEXT, fake_response
from smilex import fund_service
from smilex.models import FundHistoryPoint


class TestValidateFundCode:
    @pytest.mark.parametrize("code", ["000001", "110022", "999999"])
    def test_six_digits_accepted(self, code):
        assert fund_service.validate_fund_code(code)

    @pytest.mark.parametrize("code", ["", None, "12345", "1234567", "12a456", " 00001", "００００01",
                                      "000001\n", "000001\r\n"])
    def test_everything_else_rejected(self, code):
        assert not fund_service.validate_fund_code(code)


class TestRealtime:
    def test_parse_payload_maps_fields(self):
        data = fund_service.parse_realtime_payload(REALTIME_TEXT)
        assert data.code == "000001"
        assert data.name == "华夏成长混合"
        assert data.net_value == 1.5432
        assert data.estimated_value == 1.5678
        assert data.change_rate == 1.60
        assert data.update_time == "2024-05-11 14:30"
        assert data.net_value_date == "2024-05-10"

    def test_parse_payload_rejects_non_jsonp(self):
        assert fund_service.parse_realtime_payload('{"fundcode":"000001"}') is None
        assert fund_service.parse_realtime_payload("jsonpgz();") is None

    def test_fetch_caches_result(self):
        with patch("smilex.fund_service._requests.get",
                   return_value=fake_response(text=REALTIME_TEXT)) as mock_get:
            data = fund_service.fetch_realtime("000001")
        assert data.estimated_value == 1.5678
        assert "000001.js" in mock_get.call_args[0][0]
        assert fund_service.get_cached_realtime("000001") == data

    def test_fetch_invalid_code_raises(self):
        with pytest.raises(ValueError):
            fund_service.fetch_realtime("abc")

    def test_fetch_http_error_returns_none(self):
        with patch("smilex.fund_service._requests.get",
                   return_value=fake_response(status_code=500)):
            assert fund_service.fetch_realtime("000001") is None

    def test_fetch_network_error_returns_none(self):
        with patch("smilex.fund_service._requests.get",
                   side_effect=requests.ConnectionError("down")):
            assert fund_service.fetch_realtime("000001") is None

    def test_batch_skips_failures(self):
        def fake_get(url, **kwargs):
            if "000001" in url:
                return fake_response(text=REALTIME_TEXT)
            return fake_response(status_code=404)

        with patch("smilex.fund_service._requests.get", side_effect=fake_get):
            results = fund_service.fetch_batch_realtime(["000001", "110022", "bad"])
        assert [r.code for r in results] == ["000001"]


class TestSearch:
    def test_parse_search_payload(self):
        result = fund_service.parse_search_payload(SEARCH_TEXT)
        assert result.CODE == "000001"
        assert result.NAME == "华夏成长混合"
        assert result.FundBaseInfo.JJJL == "巩怀志"
        assert result.FundBaseInfo.MINSG is None

    def test_error_code_returns_none(self):
        text = 'cb({"ErrCode":1,"ErrMsg":"bad","Datas":[]})'
        assert fund_service.parse_search_payload(text) is None

    def test_no_matches_returns_none(self):
        assert fund_service.parse_search_payload('cb({"ErrCode":0,"Datas":[]})') is None

    @pytest.mark.parametrize("body", ["[]", "null", "\"000001\"", "{\"ErrCode\":0,\"Datas\":[\"x\"]}"])
    def test_non_object_json_returns_none(self, body):
        assert fund_service.parse_search_payload(f"SuggestData_1({body})") is None

    def test_search_passes_jsonp_params(self):
        with patch("smilex.fund_service._requests.get",
                   return_value=fake_response(text=SEARCH_TEXT)) as mock_get:
            result = fund_service.search_fund("000001")
        assert result.CODE == "000001"
        params = mock_get.call_args[1]["params"]
        assert params["m"] == 1
        assert params["key"] == "000001"
        assert params["callback"].startswith("SuggestData_")

    def test_industry_info_joined(self):
        result = fund_service.parse_search_payload(SEARCH_TEXT)
        assert fund_service.extract_industry_info(result) == "医药, 消费"

    def test_industry_info_unknown_when_absent(self):
        result = fund_service.parse_search_payload(
            'cb({"ErrCode":0,"Datas":[{"CODE":"000002","NAME":"X"}]})')
        assert fund_service.extract_industry_info(result) == "未知"
        assert fund_service.extract_fund_type(result) == "未知类型"

    def test_fund_type_prefers_ftype(self):
        result = fund_service.parse_search_payload(SEARCH_TEXT)
        assert fund_service.extract_fund_type(result) == "混合型-偏股"


class TestHistory:
    def test_fetch_history_sorted_and_filtered(self):
        payload = {"Data": {"LSJZList": [
            {"FSRQ": "2024-05-10", "DWJZ": "1.60"},
            {"FSRQ": "2024-05-08", "DWJZ": "1.50"},
            {"FSRQ": "2024-05-09", "DWJZ": ""},
        ]}}
        with patch("smilex.fund_service._requests.get",
                   return_value=fake_response(json_data=payload)):
            points = fund_service.fetch_history("000001", 7)
        assert [p.date for p in points] == ["2024-05-08", "2024-05-10"]

    def test_fetch_history_error_is_empty(self):
        with patch("smilex.fund_service._requests.get",
                   side_effect=requests.Timeout("slow")):
            assert fund_service.fetch_history("000001", 7) == []

    @pytest.mark.parametrize("payload", [[], ["x"], {"Data": []}, {"Data": {"LSJZList": {}}},
                                         {"Data": {"LSJZList": ["2024-05-10"]}}])
    def test_fetch_history_unexpected_shape_is_empty(self, payload):
        with patch("smilex.fund_service._requests.get",
                   return_value=fake_response(json_data=payload)):
            assert fund_service.fetch_history("000001", 7) == []

    def test_change_rates_use_latest_point_before_target(self):
        history = [
            FundHistoryPoint(date="2024-04-01", value=1.00),
            FundHistoryPoint(date="2024-04-11", value=1.20),   # 30 days before
            FundHistoryPoint(date="2024-05-01", value=1.25),
            FundHistoryPoint(date="2024-05-04", value=1.50),   # 7 days before
        ]
        rates = fund_service.compute_change_rates(history, 1.65, today=date(2024, 5, 11))
        assert rates["weekly_change_rate"] == 10.0
        assert rates["monthly_change_rate"] == 37.5

    def test_change_rates_zero_without_baseline(self):
        history = [FundHistoryPoint(date="2024-05-10", value=1.0)]
        rates = fund_service.compute_change_rates(history, 1.1, today=date(2024, 5, 11))
        assert rates == {"weekly_change_rate": 0.0, "monthly_change_rate": 0.0}

    def test_history_change_rate(self):
        points = [FundHistoryPoint(date="a", value=2.0), FundHistoryPoint(date="b", value=2.5)]
        assert fund_service.history_change_rate(points) == 25.0
        assert fund_service.history_change_rate(points[:1]) == 0.0

    def test_unknown_range_raises(self):
        assert fund_service.days_for_range("3m") == 90
        with pytest.raises(ValueError):
            fund_service.days_for_range("5y")
