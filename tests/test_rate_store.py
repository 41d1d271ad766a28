from __future__ import annotations

import unittest
from decimal import Decimal

from ratebot.errors import RateSourceError, UnknownRateError
from ratebot.rates.store import RateStore
from tests.fakes import FakeClock, FakeRateSource

CURRENCIES = frozenset({"USD", "JPY", "EUR"})


class RateStoreTests(unittest.TestCase):
    def _store(self) -> tuple[RateStore, FakeRateSource, FakeClock]:
        source = FakeRateSource({"USD": {"JPY": 110, "EUR": "0.9"}, "EUR": {"USD": "1.1"}})
        clock = FakeClock()
        return RateStore(source, CURRENCIES, staleness_seconds=1800, clock=clock), source, clock

    def test_convert_multiplies_by_rate(self) -> None:
        store, _, _ = self._store()
        self.assertEqual(store.convert(1000, "USD", "JPY"), Decimal(110000))
        self.assertEqual(store.rate("USD", "EUR"), Decimal("0.9"))

    def test_second_request_within_window_hits_cache(self) -> None:
        store, source, clock = self._store()
        store.convert(1000, "USD", "JPY")
        clock.advance(1799)
        store.convert(1000, "USD", "JPY")
        self.assertEqual(source.calls, ["USD"])

    def test_snapshots_are_per_base(self) -> None:
        store, source, _ = self._store()
        store.convert(1, "USD", "EUR")
        store.convert(1, "EUR", "USD")
        self.assertEqual(source.calls, ["USD", "EUR"])
        self.assertEqual(store.cached_bases(), ["EUR", "USD"])

    def test_stale_snapshot_is_refetched_once(self) -> None:
        store, source, clock = self._store()
        store.convert(1, "USD", "JPY")
        first = store.snapshot("USD")
        clock.advance(1801)
        source.rates["USD"]["JPY"] = 120
        self.assertEqual(store.convert(1, "USD", "JPY"), Decimal(120))
        store.convert(1, "USD", "JPY")
        self.assertEqual(source.calls, ["USD", "USD"])
        self.assertIsNot(store.snapshot("USD"), first)

    def test_fetch_failure_propagates_and_keeps_stale_snapshot(self) -> None:
        store, source, clock = self._store()
        store.convert(1, "USD", "JPY")
        stale = store.snapshot("USD")
        clock.advance(3600)
        source.fail = True
        with self.assertRaises(RateSourceError):
            store.convert(1, "USD", "JPY")
        self.assertIs(store.snapshot("USD"), stale)

        source.fail = False
        store.convert(1, "USD", "JPY")
        self.assertEqual(source.calls, ["USD", "USD", "USD"])

    def test_missing_target_raises(self) -> None:
        store, _, _ = self._store()
        with self.assertRaises(UnknownRateError):
            store.rate("EUR", "JPY")

    def test_same_currency_is_identity(self) -> None:
        store, _, _ = self._store()
        self.assertEqual(store.convert(5, "USD", "USD"), Decimal(5))

    def test_currencies_come_from_configuration(self) -> None:
        store, source, _ = self._store()
        self.assertEqual(store.currencies(), CURRENCIES)
        self.assertEqual(source.calls, [])


if __name__ == "__main__":
    unittest.main()
