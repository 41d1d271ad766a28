from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from ratebot.config import (
    DEFAULT_AMOUNT_LIMIT,
    ensure_directories,
    load_config,
    read_secret,
)
from ratebot.errors import ConfigError
from ratebot.rates.currencies import DEFAULT_CURRENCIES


class ConfigTests(unittest.TestCase):
    def _write(self, tmpdir: str, body: str) -> Path:
        path = Path(tmpdir) / "bot.yaml"
        path.write_text(body, encoding="utf-8")
        return path

    def test_defaults_are_applied(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(tmpdir, f"name: fx\ndata_dir: {tmpdir}/data\n")
            config = load_config(path)
        self.assertEqual(config.name, "fx")
        self.assertEqual(config.amount_limit, DEFAULT_AMOUNT_LIMIT)
        self.assertEqual(config.queue_capacity, 1000)
        self.assertEqual(config.staleness_seconds, 1800)
        self.assertEqual(config.heartbeat_seconds, 45)
        self.assertEqual(config.log_rotation, "monthly")
        self.assertEqual(config.currencies, DEFAULT_CURRENCIES)
        self.assertEqual(config.relay_bridges, frozenset())
        self.assertEqual(config.paths.secrets_dir, Path(tmpdir) / "data" / "secrets")
        self.assertEqual(config.paths.log_dir, Path(tmpdir).resolve() / "log")

    def test_overrides_and_currency_normalization(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(
                tmpdir,
                "\n".join(
                    [
                        "name: fx",
                        f"data_dir: {tmpdir}/data",
                        "amount_limit: 500",
                        "queue_capacity: 10",
                        "log_rotation: daily",
                        "relay_bridges: [bridge-1]",
                        "currencies: [usd, ' jpy ', toolong, EUR]",
                    ]
                )
                + "\n",
            )
            config = load_config(path)
        self.assertEqual(config.amount_limit, 500)
        self.assertEqual(config.queue_capacity, 10)
        self.assertEqual(config.log_rotation, "daily")
        self.assertEqual(config.relay_bridges, frozenset({"bridge-1"}))
        self.assertEqual(config.currencies, frozenset({"USD", "JPY", "EUR"}))

    def test_invalid_configs_raise(self) -> None:
        bodies = [
            "display: nameless\n",
            "name: fx\nlog_rotation: hourly\n",
            "name: fx\nqueue_capacity: 0\n",
            "name: fx\namount_limit: lots\n",
            "name: fx\nrelay_bridges: bridge\n",
            "- just\n- a list\n",
            "name: [unclosed\n",
            "name: fx\ndebug: maybe\n",
            "name: fx\nhealth_port: http\n",
            "name: fx\nhealth_port: 70000\n",
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            for body in bodies:
                with self.subTest(body=body):
                    with self.assertRaises(ConfigError):
                        load_config(self._write(tmpdir, body))
            with self.assertRaises(ConfigError):
                load_config(Path(tmpdir) / "missing.yaml")

    def test_debug_flag_and_health_port_are_parsed(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            quoted = load_config(self._write(tmpdir, "name: fx\ndebug: \"false\"\nhealth_port: \"8088\"\n"))
            enabled = load_config(self._write(tmpdir, "name: fx\ndebug: yes\nhealth_port: 0\n"))
        self.assertFalse(quoted.debug)
        self.assertEqual(quoted.health_port, 8088)
        self.assertTrue(enabled.debug)
        self.assertEqual(enabled.health_port, 0)

    def test_secrets_and_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config(self._write(tmpdir, f"name: fx\ndata_dir: {tmpdir}/data\n"))
            ensure_directories(config)
            self.assertTrue(config.paths.secrets_dir.is_dir())
            self.assertTrue(config.paths.log_dir.is_dir())
            self.assertIsNone(read_secret(config.paths.secrets_dir, "bot_token.txt"))
            (config.paths.secrets_dir / "bot_token.txt").write_text("  123:abc \n", encoding="utf-8")
            self.assertEqual(read_secret(config.paths.secrets_dir, "bot_token.txt"), "123:abc")


if __name__ == "__main__":
    unittest.main()
