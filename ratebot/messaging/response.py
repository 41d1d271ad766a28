"""Reply channels bound to the origin of an inbound message."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from ratebot.transport.base import Transport

USAGE_TEXT = "Usage: <amount> <base> <target>, e.g. 1000 USD JPY"
ABOUT_TEXT = (
    "I am a currency converter bot.\n"
    "Send an amount and two currency codes, or 'list' for the supported codes."
)


class ResponseChannel(ABC):
    kind: str

    @abstractmethod
    def send(self, text: str) -> None:
        """Deliver text to the requester."""

    def error(self, text: str) -> None:
        self.send("ERROR: " + text)

    def usage(self) -> None:
        self.send(USAGE_TEXT)

    def currency_list(self, codes: Iterable[str]) -> None:
        self.send(", ".join(sorted(codes)))

    def about(self) -> None:
        self.send(ABOUT_TEXT)


class DirectResponse(ResponseChannel):
    kind = "direct"

    def __init__(self, transport: Transport, destination: str) -> None:
        self._transport = transport
        self._destination = destination

    @property
    def destination(self) -> str:
        return self._destination

    def send(self, text: str) -> None:
        self._transport.send_message(self._destination, str(text))

    def __repr__(self) -> str:
        return f"DirectResponse({self._destination!r})"


class RelayedResponse(ResponseChannel):
    """Reply through a relay bridge, addressed to the requester it relayed for."""

    kind = "relay"

    def __init__(self, transport: Transport, bridge: str, requester: str) -> None:
        self._transport = transport
        self._bridge = bridge
        self._requester = requester

    @property
    def destination(self) -> str:
        return self._bridge

    @property
    def requester(self) -> str:
        return self._requester

    def send(self, text: str) -> None:
        self._transport.send_message(self._bridge, f"d {self._requester} {text}")

    def __repr__(self) -> str:
        return f"RelayedResponse({self._bridge!r}, {self._requester!r})"
