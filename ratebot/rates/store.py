"""TTL-cached exchange rates keyed by base currency."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Mapping

from ratebot.errors import UnknownRateError
from ratebot.rates.source import RateSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateSnapshot:
    base: str
    rates: Mapping[str, Decimal]
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def rate(self, target: str) -> Decimal:
        if target == self.base and target not in self.rates:
            return Decimal(1)
        try:
            return self.rates[target]
        except KeyError:
            raise UnknownRateError(f"No {self.base}/{target} rate available") from None


class RateStore:
    """Serve rates from per-base snapshots, refetching ones older than the staleness window.

    A failed fetch raises to the caller and leaves the previous snapshot (if
    any) untouched; it is never served as a fallback.
    """

    def __init__(
        self,
        source: RateSource,
        currencies: frozenset[str],
        *,
        staleness_seconds: float = 30 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self._currencies = currencies
        self._staleness_seconds = staleness_seconds
        self._clock = clock
        self._snapshots: dict[str, RateSnapshot] = {}
        self._lock = threading.Lock()

    def currencies(self) -> frozenset[str]:
        return self._currencies

    def snapshot(self, base: str) -> RateSnapshot | None:
        return self._snapshots.get(base)

    def cached_bases(self) -> list[str]:
        return sorted(self._snapshots)

    def _fresh_snapshot(self, base: str) -> RateSnapshot:
        with self._lock:
            now = self._clock()
            current = self._snapshots.get(base)
            if current is not None and current.age(now) <= self._staleness_seconds:
                return current
            rates = dict(self._source.fetch_rates(base))
            fresh = RateSnapshot(base=base, rates=rates, fetched_at=self._clock())
            self._snapshots[base] = fresh
            logger.info("updated values of %s", base)
            return fresh

    def rate(self, base: str, target: str) -> Decimal:
        return self._fresh_snapshot(base).rate(target)

    def convert(self, amount: int, base: str, target: str) -> Decimal:
        snapshot = self._fresh_snapshot(base)
        return Decimal(amount) * snapshot.rate(target)
