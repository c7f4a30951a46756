"""Tests for SymbolResolver and SymbolMap."""

import pytest

from app.marketdata.models import ProviderID, Quote
from app.marketdata.symbols import SymbolMap, SymbolResolver


class TestToVendorSymbol:
    """Bloomberg-style input to Twelve Data spelling."""

    @pytest.mark.parametrize(
        "original, expected",
        [
            ("RKT LN", "RKT:LSE"),
            ("NESN SW", "NESN:SIX"),
            ("AAPL US", "AAPL"),
            ("7203 JP", "7203:JPX"),
            ("SAP GY", "SAP:XETR"),
            ("ENI IM", "ENI:MTA"),
        ],
    )
    def test_known_suffixes(self, resolver, original, expected):
        assert resolver.to_vendor_symbol(original) == expected

    def test_deterministic(self, resolver):
        """Same input, same output, every time."""
        assert {resolver.to_vendor_symbol("RKT LN") for _ in range(5)} == {"RKT:LSE"}

    def test_cleans_input(self, resolver):
        assert resolver.to_vendor_symbol("  rkt ln ") == "RKT:LSE"
        assert resolver.to_vendor_symbol("brk/b") == "BRK.B"

    def test_vendor_form_is_unchanged(self, resolver):
        assert resolver.to_vendor_symbol("AAPL") == "AAPL"
        assert resolver.to_vendor_symbol("RKT:LSE") == "RKT:LSE"

    def test_idempotent(self, resolver):
        once = resolver.to_vendor_symbol("NESN SW")
        assert resolver.to_vendor_symbol(once) == once

    def test_us_overrides_apply_first(self, resolver):
        assert resolver.to_vendor_symbol("ACHVW") == "ACHVWXX"
        assert resolver.to_vendor_symbol("TICAW US") == "TICAWX"

    def test_unknown_suffix_returns_cleaned_original(self, resolver, caplog):
        with caplog.at_level("WARNING"):
            assert resolver.to_vendor_symbol("foo zz") == "FOO ZZ"
        assert "Unknown exchange suffix" in caplog.text

    def test_empty(self, resolver):
        assert resolver.to_vendor_symbol("") == ""

    def test_injected_tables(self):
        custom = SymbolResolver(suffixes={"XX": ":TEST"}, us_overrides={})
        assert custom.to_vendor_symbol("ABC XX") == "ABC:TEST"
        assert custom.to_vendor_symbol("ACHVW") == "ACHVW"


class TestRouting:
    """Owner selection and alternate-vendor candidate spellings."""

    @pytest.mark.parametrize("original", ["7203 JP", "9984 JT", "700 HK", "ENI IM", "RKT LN", "NOVOB DC"])
    def test_alternate_markets_go_to_fmp(self, resolver, original):
        assert resolver.owner_of(original) is ProviderID.FMP

    @pytest.mark.parametrize("original", ["AAPL", "AAPL US", "NESN SW", "SAP GY", "FOO ZZ"])
    def test_everything_else_goes_to_twelve_data(self, resolver, original):
        assert resolver.owner_of(original) is ProviderID.TWELVE_DATA

    def test_japan_candidates(self, resolver):
        assert resolver.alternate_vendor_candidates("7203 JP") == ["7203.T", "7203.TYO", "7203"]

    def test_hong_kong_zero_padded_first(self, resolver):
        assert resolver.alternate_vendor_candidates("700 HK") == ["0700.HK", "700.HK", "700"]

    def test_hong_kong_already_padded_has_no_duplicates(self, resolver):
        assert resolver.alternate_vendor_candidates("0700 HK") == ["0700.HK", "0700"]

    def test_uk_italy_denmark(self, resolver):
        assert resolver.alternate_vendor_candidates("RKT LN") == ["RKT.L", "RKT.LON", "RKT"]
        assert resolver.alternate_vendor_candidates("ENI IM") == ["ENI.MI", "ENI"]
        assert resolver.alternate_vendor_candidates("NOVOB DC") == ["NOVOB.CO", "NOVOB"]

    def test_non_alternate_symbol_yields_vendor_symbol(self, resolver):
        assert resolver.alternate_vendor_candidates("AAPL US") == ["AAPL"]

    def test_is_international(self, resolver):
        assert resolver.is_international("RKT LN")
        assert not resolver.is_international("AAPL US")
        assert not resolver.is_international("AAPL")


class TestMinorUnits:
    """SIX listings quote in centimes."""

    def test_swiss_price_divided(self, resolver):
        assert resolver.normalize_price("NESN SW", 12300) == pytest.approx(123.0)

    def test_other_price_untouched(self, resolver):
        assert resolver.normalize_price("AAPL", 190.5) == 190.5
        assert resolver.normalize_price("NESN SW", None) is None

    def test_normalize_quote_scales_every_price_field(self, resolver):
        quote = Quote(
            original_symbol="NESN SW",
            vendor_symbol="NESN:SIX",
            price=12300.0,
            change=100.0,
            change_percent=0.82,
            volume=5000,
            previous_close=12200.0,
            high=12400.0,
            low=12100.0,
            open=12150.0,
        )
        scaled = resolver.normalize_quote(quote)
        assert scaled.price == pytest.approx(123.0)
        assert scaled.change == pytest.approx(1.0)
        assert scaled.previous_close == pytest.approx(122.0)
        assert scaled.high == pytest.approx(124.0)
        assert scaled.low == pytest.approx(121.0)
        assert scaled.open == pytest.approx(121.5)
        assert scaled.change_percent == 0.82
        assert scaled.volume == 5000

    def test_normalize_quote_leaves_others_alone(self, resolver):
        quote = Quote(original_symbol="AAPL", vendor_symbol="AAPL", price=190.0)
        assert resolver.normalize_quote(quote) is quote


class TestSymbolMap:
    """Bidirectional original <-> vendor map."""

    def test_both_directions(self, resolver):
        symbol_map = resolver.build_map(["RKT LN", "AAPL"])
        assert symbol_map.vendor_for("RKT LN") == "RKT:LSE"
        assert symbol_map.original_for("RKT:LSE") == "RKT LN"
        assert symbol_map.vendors() == ["RKT:LSE", "AAPL"]

    def test_many_originals_one_vendor(self, resolver):
        symbol_map = resolver.build_map(["AAPL", "AAPL US"])
        assert symbol_map.vendors() == ["AAPL"]
        assert symbol_map.originals_for("AAPL") == ("AAPL", "AAPL US")
        assert len(symbol_map) == 2

    def test_duplicate_original_ignored(self):
        symbol_map = SymbolMap([("AAPL", "AAPL"), ("AAPL", "OTHER")])
        assert symbol_map.vendor_for("AAPL") == "AAPL"
        assert symbol_map.originals_for("OTHER") == ()
        assert "AAPL" in symbol_map

    def test_vendor_lookup_ignores_case(self, resolver):
        symbol_map = resolver.build_map(["ASML NA"])
        assert symbol_map.vendors() == ["ASML:Euronext"]
        assert symbol_map.originals_for("ASML:EURONEXT") == ("ASML NA",)
        assert symbol_map.original_for("asml:euronext") == "ASML NA"
