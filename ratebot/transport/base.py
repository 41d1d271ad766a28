"""Chat transport interface the session manager drives."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

CHAT = "chat"


@dataclass(frozen=True)
class InboundMessage:
    origin: str
    body: str
    kind: str = CHAT
    requester: str | None = None


@dataclass(frozen=True)
class SubscriptionRequest:
    origin: str
    subscribe: bool = True


MessageHandler = Callable[[InboundMessage], None]
SubscriptionHandler = Callable[[SubscriptionRequest], None]
FaultHandler = Callable[[BaseException, str], None]


class Transport(ABC):
    """Connection-level primitives of a chat protocol.

    Handlers may be invoked from a thread owned by the transport. Faults that
    happen after ``listen`` must be reported through the fault handler with
    the stage they happened in; setup calls raise instead.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the connection to the chat service."""

    @abstractmethod
    def authenticate(self, credentials: str) -> None:
        """Prove the bot identity."""

    @abstractmethod
    def register_message_handler(self, handler: MessageHandler) -> None: ...

    @abstractmethod
    def register_subscription_handler(self, handler: SubscriptionHandler) -> None: ...

    @abstractmethod
    def register_fault_handler(self, handler: FaultHandler) -> None: ...

    @abstractmethod
    def listen(self) -> None:
        """Start delivering inbound events to the registered handlers."""

    @abstractmethod
    def send_presence(self, available: bool) -> None: ...

    @abstractmethod
    def send_message(self, destination: str, text: str) -> None: ...

    @abstractmethod
    def accept_subscription(self, origin: str) -> None: ...

    @abstractmethod
    def drop_subscription(self, origin: str) -> None: ...

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection; safe to call on a half-open transport."""
