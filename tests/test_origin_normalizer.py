"""Tests for origin note normalization."""

import pytest

from schoolmeal.normalize.origin import normalize_origin


class TestNormalizeOrigin:
    """Tests for grouping ingredients by origin."""

    def test_domestic_beef_and_foreign_origin(self):
        raw = "쇠고기(종류) : 국내산(한우)\n고춧가루 : 중국"
        assert normalize_origin(raw) == "domestic : 쇠고기\n중국 : 고춧가루"

    def test_full_feed_note(self, neis_lunch_row):
        assert normalize_origin(neis_lunch_row["ORPLC_INFO"]) == (
            "domestic : 돼지고기, 쇠고기\n미국 : 쌀\n중국 : 고춧가루, 쌀"
        )

    def test_domestic_labels(self):
        raw = "배추 : 국내산<br/>무 : 국산"
        assert normalize_origin(raw) == "domestic : 무, 배추"

    def test_domestic_group_comes_first(self):
        raw = "고등어 : 노르웨이<br/>쌀 : 국내산"
        assert normalize_origin(raw) == "domestic : 쌀\n노르웨이 : 고등어"

    def test_processed_products_skipped(self):
        raw = "수산가공품(어묵) : 국내산<br/>식육가공품(햄) : 미국<br/>낙지 : 중국"
        assert normalize_origin(raw) == "중국 : 낙지"

    def test_remarks_skipped(self):
        raw = "비고 : 수입산 포함<br/>김 : 국내산"
        assert normalize_origin(raw) == "domestic : 김"

    def test_bracketed_country_list(self):
        raw = "콩 : 수입산(미국, 캐나다 외)"
        assert normalize_origin(raw) == "미국 : 콩\n캐나다 : 콩"

    def test_bracketed_single_country(self):
        assert normalize_origin("오징어 : 원양산(페루)") == "페루 : 오징어"

    def test_ingredient_suffixes_stripped(self):
        assert normalize_origin("오리고기 : 태국") == "태국 : 오리"

    def test_generic_import_dropped_falls_back_to_raw_lines(self):
        raw = "콩 : 수입산"
        assert normalize_origin(raw) == "원산지\n콩 : 수입산"

    def test_lines_without_separator_ignored(self):
        raw = "원산지 표시<br/>김치 : 국내산"
        assert normalize_origin(raw) == "domestic : 김치"

    def test_list_input(self):
        assert normalize_origin(["쌀 : 국내산", "닭고기 : 브라질"]) == (
            "domestic : 쌀\n브라질 : 닭"
        )

    @pytest.mark.parametrize("raw", [None, "", "[]", [], "원산지 정보 없음"])
    def test_nothing_usable(self, raw):
        assert normalize_origin(raw) is None

    def test_idempotent_on_same_input(self, neis_lunch_row):
        raw = neis_lunch_row["ORPLC_INFO"]
        assert normalize_origin(raw) == normalize_origin(raw)
