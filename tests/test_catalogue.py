"""Tests for the fund catalogue: seeding, add/remove, refresh, filter, sort."""
from unittest.mock import patch

import pytest

from conftest import REALTIME_TEXT, SEARCH_TEXT
from smilex import fund_catalogue, fund_service
from smilex.models import FundHistoryPoint


def test_defaults_served_when_store_empty():
    funds = fund_catalogue.get_all_funds()
    assert [f.code for f in funds] == ["000001", "110022", "001475", "000209", "003095"]
    assert funds[0].valuation.valuation == 1.5678


class TestAddRemove:
    def test_add_fund_builds_entry(self):
        fund_catalogue.save_all_funds([])
        search = fund_service.parse_search_payload(SEARCH_TEXT.replace("000001", "519000"))
        live = fund_service.parse_realtime_payload(REALTIME_TEXT.replace("000001", "519000"))
        with patch.object(fund_service, "search_fund", return_value=search), \
                patch.object(fund_service, "fetch_realtime", return_value=live):
            fund = fund_catalogue.add_fund("519000")
        assert fund.manager == "巩怀志"
        assert fund.type == "混合型-偏股"
        assert fund.valuation.valuation == 1.5678
        assert fund.valuation.daily_change == round(1.5678 - 1.5432, 4)
        assert fund_catalogue.get_fund_by_code("519000") is not None

    def test_add_duplicate_rejected(self):
        with pytest.raises(ValueError):
            fund_catalogue.add_fund("000001")

    def test_add_invalid_code_rejected(self):
        with pytest.raises(ValueError):
            fund_catalogue.add_fund("12")

    def test_add_unknown_fund(self):
        with patch.object(fund_service, "search_fund", return_value=None):
            with pytest.raises(LookupError):
                fund_catalogue.add_fund("999999")

    def test_remove(self):
        assert fund_catalogue.remove_fund("000001")
        assert fund_catalogue.get_fund_by_code("000001") is None
        assert not fund_catalogue.remove_fund("000001")


def test_refresh_valuations_updates_matching_funds():
    live = fund_service.parse_realtime_payload(
        REALTIME_TEXT.replace('"gsz":"1.5678"', '"gsz":"1.6000"'))
    with patch.object(fund_service, "fetch_batch_realtime", return_value=[live]):
        assert fund_catalogue.refresh_valuations() == 1
    assert fund_catalogue.get_fund_by_code("000001").valuation.valuation == 1.6
    # Untouched funds keep their stored valuation
    assert fund_catalogue.get_fund_by_code("110022").valuation.valuation == 2.3456


def test_apply_change_rates_without_history_is_noop():
    fund = fund_catalogue.get_fund_by_code("000001")
    with patch.object(fund_service, "fetch_history", return_value=[]):
        assert fund_catalogue.apply_change_rates(fund) == fund


def test_apply_change_rates_fills_rates():
    fund = fund_catalogue.get_fund_by_code("000001")
    history = [FundHistoryPoint(date="2000-01-01", value=1.0)]
    with patch.object(fund_service, "fetch_history", return_value=history):
        updated = fund_catalogue.apply_change_rates(fund)
    assert updated.valuation.weekly_change_rate == round((1.5678 - 1.0) * 100, 2)
    assert updated.valuation.monthly_change_rate == round((1.5678 - 1.0) * 100, 2)


class TestFilterSort:
    def test_filter_by_query_type_and_risk(self):
        funds = fund_catalogue.get_all_funds()
        assert [f.code for f in fund_catalogue.filter_funds(funds, "易方达")] == ["110022", "001475"]
        assert [f.code for f in fund_catalogue.filter_funds(funds, "0030")] == ["003095"]
        assert {f.code for f in fund_catalogue.filter_funds(funds, fund_type="股票型")} == {"110022"}
        assert len(fund_catalogue.filter_funds(funds, risk_level="高风险")) == 2

    def test_sort_by_daily_change_desc(self):
        funds = fund_catalogue.sort_funds("dailyChangeRate", "desc", fund_catalogue.get_all_funds())
        assert funds[0].code == "000209"
        assert funds[-1].code == "003095"

    def test_sort_by_valuation_asc(self):
        funds = fund_catalogue.sort_funds("valuation", "asc", fund_catalogue.get_all_funds())
        assert funds[0].code == "000209"

    def test_unknown_sort_field_keeps_order(self):
        funds = fund_catalogue.get_all_funds()
        assert fund_catalogue.sort_funds("bogus", "asc", funds) == funds

    def test_toggle_sort(self):
        assert fund_catalogue.toggle_sort("name", "asc", "name") == ("name", "desc")
        assert fund_catalogue.toggle_sort("name", "desc", "name") == ("name", "asc")
        assert fund_catalogue.toggle_sort("name", "asc", "valuation") == ("valuation", "desc")
