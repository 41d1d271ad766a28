"""Bot configuration loader and path resolver."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ratebot.errors import ConfigError
from ratebot.rates.currencies import DEFAULT_CURRENCIES, normalize_codes

DEFAULT_AMOUNT_LIMIT = 1_000_000_000_000
DEFAULT_QUEUE_CAPACITY = 1000
DEFAULT_STALENESS_SECONDS = 30 * 60
DEFAULT_HEARTBEAT_SECONDS = 45
DEFAULT_RATES_URL = "https://open.er-api.com/v6/latest"
DEFAULT_RELAY_CONFIRMATION = "Your direct message has been sent."
LOG_ROTATIONS = ("daily", "weekly", "monthly")


@dataclass(frozen=True)
class BotPaths:
    data_dir: Path
    secrets_dir: Path
    log_dir: Path
    contacts_path: Path


@dataclass(frozen=True)
class BotConfig:
    name: str
    amount_limit: int
    queue_capacity: int
    staleness_seconds: float
    heartbeat_seconds: float
    log_filename: str
    log_rotation: str
    debug: bool
    relay_bridges: frozenset[str]
    relay_confirmation: str
    currencies: frozenset[str]
    rates_url: str
    health_port: int
    paths: BotPaths


def read_secret(secrets_dir: Path, filename: str) -> str | None:
    """Read first line of a secret file; return None if missing or empty."""
    path = secrets_dir / filename
    if not path.exists():
        return None
    raw = path.read_text(encoding="utf-8").strip()
    return raw if raw else None


def _positive_int(raw: dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{key} must be positive, got {number}")
    return number


_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


def _flag(raw: dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ConfigError(f"{key} must be true or false, got {value!r}")


def _port(raw: dict[str, Any], key: str) -> int:
    value = raw.get(key, 0)
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a port number, got {value!r}")
    try:
        number = int(value or 0)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a port number, got {value!r}") from exc
    if not 0 <= number <= 65535:
        raise ConfigError(f"{key} must be between 0 and 65535, got {number}")
    return number


def _validate_raw_config(raw: dict[str, Any]) -> None:
    if not str(raw.get("name", "")).strip():
        raise ConfigError("Missing required config key: name")

    rotation = raw.get("log_rotation", "monthly")
    if rotation not in LOG_ROTATIONS:
        raise ConfigError(f"log_rotation must be one of {', '.join(LOG_ROTATIONS)}, got {rotation!r}")

    for key in ("relay_bridges", "currencies"):
        if key in raw and not isinstance(raw[key], list):
            raise ConfigError(f"{key} must be a list")


def config_from_mapping(raw: dict[str, Any], base_dir: Path | None = None) -> BotConfig:
    """Validate a raw mapping and resolve it into a BotConfig."""
    _validate_raw_config(raw)
    name = str(raw["name"]).strip()

    if raw.get("data_dir"):
        data_dir = Path(str(raw["data_dir"])).expanduser()
    else:
        data_dir = Path.home() / "ratebotdata" / name
    log_dir = Path(str(raw.get("log_dir", "log"))).expanduser()
    if not log_dir.is_absolute():
        log_dir = (base_dir or data_dir) / log_dir
    secrets_dir = data_dir / "secrets"
    paths = BotPaths(
        data_dir=data_dir,
        secrets_dir=secrets_dir,
        log_dir=log_dir,
        contacts_path=secrets_dir / "contacts.txt",
    )

    currencies = normalize_codes(raw["currencies"]) if raw.get("currencies") else DEFAULT_CURRENCIES
    if not currencies:
        raise ConfigError("currencies must list at least one 3-letter code")

    return BotConfig(
        name=name,
        amount_limit=_positive_int(raw, "amount_limit", DEFAULT_AMOUNT_LIMIT),
        queue_capacity=_positive_int(raw, "queue_capacity", DEFAULT_QUEUE_CAPACITY),
        staleness_seconds=float(_positive_int(raw, "staleness_seconds", DEFAULT_STALENESS_SECONDS)),
        heartbeat_seconds=float(_positive_int(raw, "heartbeat_seconds", DEFAULT_HEARTBEAT_SECONDS)),
        log_filename=str(raw.get("log_filename", "ratebot.log")).strip() or "ratebot.log",
        log_rotation=str(raw.get("log_rotation", "monthly")),
        debug=_flag(raw, "debug", False),
        relay_bridges=frozenset(str(b).strip() for b in raw.get("relay_bridges", []) if str(b).strip()),
        relay_confirmation=str(raw.get("relay_confirmation", DEFAULT_RELAY_CONFIRMATION)),
        currencies=currencies,
        rates_url=str(raw.get("rates_url", DEFAULT_RATES_URL)).rstrip("/"),
        health_port=_port(raw, "health_port"),
        paths=paths,
    )


def load_config(config_path: Path) -> BotConfig:
    """Load a YAML config file and resolve data paths."""
    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config is not valid YAML: {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    return config_from_mapping(raw, base_dir=config_path.resolve().parent)


def ensure_directories(config: BotConfig) -> None:
    """Create data directories without touching existing data."""
    config.paths.data_dir.mkdir(parents=True, exist_ok=True)
    config.paths.secrets_dir.mkdir(parents=True, exist_ok=True)
    config.paths.log_dir.mkdir(parents=True, exist_ok=True)
