"""Exchange-rate data sources."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping
from urllib import error, request

from ratebot.errors import RateSourceError

DEFAULT_TIMEOUT_SECONDS = 15


class RateSource(ABC):
    @abstractmethod
    def fetch_rates(self, base: str) -> Mapping[str, Decimal]:
        """Return the factor from ``base`` to every quoted currency."""


def _parse_rates(base: str, data: Any) -> dict[str, Decimal]:
    if not isinstance(data, dict):
        raise RateSourceError(f"Rate source returned unexpected payload for {base}")
    if data.get("result") != "success":
        reason = data.get("error-type") or data.get("result") or "unknown"
        raise RateSourceError(f"Rate source refused {base}: {reason}")
    raw_rates = data.get("rates")
    if not isinstance(raw_rates, dict) or not raw_rates:
        raise RateSourceError(f"Rate source returned no rates for {base}")
    out: dict[str, Decimal] = {}
    for code, value in raw_rates.items():
        try:
            out[str(code).upper()] = Decimal(str(value))
        except InvalidOperation as exc:
            raise RateSourceError(f"Invalid rate for {base}/{code}: {value!r}") from exc
    return out


class HttpRateSource(RateSource):
    """Fetch latest rates from an open.er-api.com compatible endpoint."""

    def __init__(self, base_url: str, *, timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    def fetch_rates(self, base: str) -> Mapping[str, Decimal]:
        url = f"{self._base_url}/{base.upper()}"
        req = request.Request(url, headers={"Accept": "application/json"}, method="GET")
        try:
            with request.urlopen(req, timeout=self._timeout_seconds) as response:  # noqa: S310
                data = json.loads(response.read().decode("utf-8"))
        except error.HTTPError as exc:
            raise RateSourceError(f"Rate source HTTP {exc.code} for {base}") from exc
        except (error.URLError, TimeoutError, OSError) as exc:
            raise RateSourceError(f"Rate source unreachable for {base}: {exc}") from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RateSourceError(f"Rate source returned invalid JSON for {base}") from exc
        return _parse_rates(base.upper(), data)
