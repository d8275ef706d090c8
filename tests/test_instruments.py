"""
test_instruments.py — Tests for the tradelytics instrument registry.

Covers: static table, symbol normalization, custom instruments,
category inference, fail-soft fallback, config table payload.
Run: pytest tests/test_instruments.py -v
"""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from tradelytics.instruments import (
    INSTRUMENT_CONFIGS,
    InstrumentConfigError,
    InstrumentRegistry,
    custom_instrument,
    instrument_config_table,
    normalize_symbol,
    resolve_instrument,
)
from tradelytics.models import InstrumentCategory


@pytest.fixture
def registry() -> InstrumentRegistry:
    return InstrumentRegistry()


def _make_custom(symbol: str = "MYIDX", multiplier: str = "10") -> object:
    return custom_instrument(
        symbol=symbol,
        name="My Index",
        category="futures",
        multiplier=multiplier,
        tick_size="0.5",
    )


# ===========================================================================
# Static table
# ===========================================================================

class TestStaticTable:

    def test_mnq_contract(self):
        cfg = INSTRUMENT_CONFIGS["MNQ"]
        assert cfg.category == InstrumentCategory.FUTURES
        assert cfg.multiplier == Decimal("2")
        assert cfg.tick_size == Decimal("0.25")
        assert cfg.tick_value == Decimal("0.5")

    def test_forex_pairs_have_pip_size(self):
        forex = [c for c in INSTRUMENT_CONFIGS.values() if c.category == InstrumentCategory.FOREX]
        assert forex
        for cfg in forex:
            expected = Decimal("0.01") if "JPY" in cfg.symbol else Decimal("0.0001")
            assert cfg.pip_size == expected

    def test_tick_value_consistent_with_multiplier(self):
        for cfg in INSTRUMENT_CONFIGS.values():
            assert cfg.tick_value == cfg.tick_size * cfg.multiplier, cfg.symbol

    def test_keys_are_uppercase_symbols(self):
        for key, cfg in INSTRUMENT_CONFIGS.items():
            assert key == key.upper() == cfg.symbol


# ===========================================================================
# normalize_symbol
# ===========================================================================

class TestNormalizeSymbol:

    @pytest.mark.parametrize("raw,expected", [
        ("mnq", "MNQ"),
        ("CME_MINI:MNQH2026", "MNQ"),
        ("/ESM6", "ES"),
        ("NQ1!", "NQ"),
        ("MNQZ24", "MNQ"),
        ("eur/usd", "EURUSD"),
        ("EUR_USD", "EURUSD"),
        ("BTC-USD", "BTCUSD"),
        ("OANDA:GBPJPY", "GBPJPY"),
        ("  aapl ", "AAPL"),
    ])
    def test_normalizes(self, raw, expected):
        assert normalize_symbol(raw) == expected

    def test_empty_symbol(self):
        assert normalize_symbol("") == ""

    def test_unknown_root_left_alone(self):
        assert normalize_symbol("ABCZ24") == "ABCZ24"


# ===========================================================================
# Resolution
# ===========================================================================

class TestResolve:

    def test_case_insensitive(self, registry):
        assert registry.resolve("mnq") is INSTRUMENT_CONFIGS["MNQ"]

    def test_custom_overrides_static(self, registry):
        custom = _make_custom(symbol="MNQ", multiplier="7")
        cfg = registry.resolve("mnq", [custom])
        assert cfg.is_custom
        assert cfg.multiplier == Decimal("7")

    def test_custom_only_symbol(self, registry):
        cfg = registry.resolve("myidx", [_make_custom()])
        assert cfg.symbol == "MYIDX"
        assert cfg.tick_value == Decimal("5")

    def test_unknown_symbol_falls_back(self, registry, caplog):
        with caplog.at_level(logging.WARNING, logger="tradelytics.instruments"):
            cfg = registry.resolve("ZZZZ")
        assert cfg.multiplier == Decimal("1")
        assert cfg.display_decimals == 2
        assert cfg.category == InstrumentCategory.OTHER
        assert "ZZZZ" in caplog.text

    def test_collector_records_misses(self, registry):
        misses: set[str] = set()
        registry.resolve("ZZZZ", unresolved=misses)
        registry.resolve("MNQ", unresolved=misses)
        assert misses == {"ZZZZ"}

    def test_collector_logs_each_miss_once(self, registry, caplog):
        misses: set[str] = set()
        with caplog.at_level(logging.WARNING, logger="tradelytics.instruments"):
            registry.resolve("ZZZZ", unresolved=misses)
            registry.resolve("zzzz", unresolved=misses)
        assert len([r for r in caplog.records if "ZZZZ" in r.getMessage().upper()]) == 1

    def test_resolve_leaves_registry_unchanged(self, registry):
        before = {k: dict(v) if isinstance(v, dict) else v for k, v in vars(registry).items()}
        registry.resolve("QQQZZZ9")
        registry.resolve("QQQZZZ9", unresolved=set())
        after = {k: dict(v) if isinstance(v, dict) else v for k, v in vars(registry).items()}
        assert after == before

    def test_empty_symbol_never_raises(self, registry):
        cfg = registry.resolve("")
        assert cfg.multiplier == Decimal("1")

    def test_inferred_forex_cross(self, registry):
        cfg = registry.resolve("AUDNZD")
        assert cfg.category == InstrumentCategory.FOREX
        assert cfg.pip_size == Decimal("0.0001")
        assert cfg.currency == "NZD"

    def test_inferred_jpy_pair(self, registry):
        cfg = registry.resolve("CADJPY")
        assert cfg.pip_size == Decimal("0.01")
        assert cfg.currency == "JPY"

    def test_inferred_crypto(self, registry):
        assert registry.resolve("DOGEUSDT").category == InstrumentCategory.CRYPTO
        assert registry.resolve("XRP-USD").category == InstrumentCategory.CRYPTO

    def test_contract_month_resolves_to_root(self, registry):
        assert registry.resolve("CME_MINI:MNQH2026").multiplier == Decimal("2")

    def test_get_has_no_fallback(self, registry):
        assert registry.get("ZZZZ") is None
        assert registry.get("es").symbol == "ES"

    def test_module_level_resolver(self):
        assert resolve_instrument("ES").multiplier == Decimal("50")


# ===========================================================================
# Custom instruments
# ===========================================================================

class TestCustomInstrument:

    def test_forex_default_pip_size(self):
        cfg = custom_instrument("USDSEK", "Dollar/Krona", InstrumentCategory.FOREX, "1", "0.00001")
        assert cfg.pip_size == Decimal("0.0001")

    @pytest.mark.parametrize("kwargs,message", [
        ({"symbol": ""}, "Symbol"),
        ({"symbol": "TOOLONGSYMBOL"}, "10 characters"),
        ({"name": " "}, "Name"),
        ({"multiplier": "0"}, "Multiplier"),
        ({"tick_size": "-0.1"}, "Tick size"),
        ({"display_decimals": 9}, "decimals"),
        ({"category": "bonds"}, "category"),
        ({"multiplier": "ten"}, "Multiplier must be a number"),
        ({"tick_size": "0.0x1"}, "Tick size must be a number"),
        ({"tick_value": "n/a"}, "Tick value"),
        ({"pip_size": "pip"}, "Pip size"),
        ({"multiplier": None}, "Multiplier"),
    ])
    def test_validation(self, kwargs, message):
        args = {
            "symbol": "ABC",
            "name": "Abc",
            "category": "stock",
            "multiplier": "1",
            "tick_size": "0.01",
        }
        args.update(kwargs)
        with pytest.raises(InstrumentConfigError, match=message):
            custom_instrument(**args)


# ===========================================================================
# Listing and config table
# ===========================================================================

class TestConfigTable:

    def test_available_instruments_flags_custom(self, registry):
        listed = registry.available_instruments([_make_custom()])
        assert listed[-1] == {
            "symbol": "MYIDX", "name": "My Index", "category": "futures", "is_custom": True,
        }
        assert all(not item["is_custom"] for item in listed[:-1])

    def test_config_table_payload(self):
        table = instrument_config_table()
        mnq = next(row for row in table if row["symbol"] == "MNQ")
        assert set(mnq) == {
            "symbol", "name", "category", "multiplier", "tick_size",
            "tick_value", "currency", "display_decimals",
        }
        assert mnq["multiplier"] == Decimal("2")
        assert len(table) == len(INSTRUMENT_CONFIGS)

    def test_registry_with_own_table(self):
        reg = InstrumentRegistry(configs={"MNQ": INSTRUMENT_CONFIGS["MNQ"]})
        assert len(reg.config_table()) == 1
        assert reg.resolve("ES").multiplier == Decimal("1")
