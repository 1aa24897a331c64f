import math

import pytest

from app.cache import fx_rate_cache
from app.currency import (
    DEFAULT_FX_RATES,
    batch_convert,
    clear_fx_rates_cache,
    convert_currency,
    format_currency,
    get_fx_rate,
    get_fx_rates,
    rate_between,
    safe_number,
)
from app.models import Setting


def test_defaults_used_without_settings(db):
    assert get_fx_rates(db) == DEFAULT_FX_RATES


def test_settings_override_default_rates(db):
    db.add(Setting(key="FX_RATE_GHS", value="0.0625", category="fx"))
    db.commit()

    assert get_fx_rates(db)["GHS"] == pytest.approx(0.0625)
    assert get_fx_rate(db, "GHS") == pytest.approx(0.0625)
    assert get_fx_rate(db, "USD", "GHS") == pytest.approx(16.0)


@pytest.mark.parametrize("value", ["abc", "0", "-3", "nan"])
def test_invalid_stored_rates_are_ignored(db, value):
    db.add(Setting(key="FX_RATE_GHS", value=value, category="fx"))
    db.commit()

    assert get_fx_rates(db)["GHS"] == DEFAULT_FX_RATES["GHS"]


def test_same_currency_is_identity(db):
    assert get_fx_rate(db, "GHS", "GHS") == 1.0
    assert convert_currency(db, 123.45, "USD", "USD") == 123.45


def test_convert_ghs_to_usd_and_back(db):
    assert convert_currency(db, 1000, "GHS", "USD") == pytest.approx(80.0)
    assert convert_currency(db, 80, "USD", "GHS") == pytest.approx(1000.0)


def test_cross_rate_between_non_base_currencies():
    rates = {"USD": 1.0, "GHS": 0.08, "EUR": 1.1}
    assert rate_between(rates, "EUR", "GHS") == pytest.approx(1.1 / 0.08)


def test_unknown_currency_falls_back_to_one():
    assert rate_between({"USD": 1.0}, "XOF", "USD") == 1.0


def test_batch_convert_keeps_order(db):
    result = batch_convert(db, [(100, "USD"), (1000, "GHS"), (5, "USD")], "USD")
    assert result == pytest.approx([100, 80, 5])


def test_batch_convert_all_same_currency(db):
    assert batch_convert(db, [(1, "GHS"), (2, "GHS")], "GHS") == [1, 2]


@pytest.mark.parametrize(
    "value,expected",
    [(None, 0.0), (float("nan"), 0.0), (math.inf, 0.0), ("12.5", 12.5), ("bad", 0.0), (3, 3.0)],
)
def test_safe_number(value, expected):
    assert safe_number(value) == expected


def test_format_currency():
    assert format_currency(1234.5, "USD") == "$1,234.50"
    assert format_currency(-50, "GHS") == "-GHS 50.00"
    assert format_currency(None, "GHS") == "GHS 0.00"


# ---------------------------------------------------------------------------
# Rate table cache
# ---------------------------------------------------------------------------


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, key):
        self.store.pop(key, None)


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(fx_rate_cache, "redis_client", fake)
    return fake


def test_rates_are_served_from_cache(db, fake_redis):
    db.add(Setting(key="FX_RATE_GHS", value="0.0625", category="fx"))
    db.commit()
    assert get_fx_rates(db)["GHS"] == pytest.approx(0.0625)

    db.query(Setting).delete()
    db.commit()

    assert get_fx_rates(db)["GHS"] == pytest.approx(0.0625)
    clear_fx_rates_cache()
    assert get_fx_rates(db) == DEFAULT_FX_RATES


@pytest.mark.parametrize("payload", ["not json", '{"GHS": -1}', '{"GHS": "0.08"}', "[]"])
def test_malformed_cached_table_is_a_miss(db, fake_redis, payload):
    fake_redis.store["fx_rates"] = payload

    assert fx_rate_cache.get_rates() is None
    assert get_fx_rates(db) == DEFAULT_FX_RATES
