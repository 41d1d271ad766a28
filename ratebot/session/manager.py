"""Connection lifecycle state machine with fault-driven restarts."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable

from ratebot.errors import InvalidTransitionError
from ratebot.transport.base import InboundMessage, SubscriptionRequest, Transport

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    REGISTERED = "registered"
    ACTIVE = "active"
    SHUTDOWN = "shutdown"


TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.DISCONNECTED: frozenset({SessionState.CONNECTING, SessionState.SHUTDOWN}),
    SessionState.CONNECTING: frozenset(
        {SessionState.AUTHENTICATING, SessionState.DISCONNECTED, SessionState.SHUTDOWN}
    ),
    SessionState.AUTHENTICATING: frozenset(
        {SessionState.REGISTERED, SessionState.DISCONNECTED, SessionState.SHUTDOWN}
    ),
    SessionState.REGISTERED: frozenset(
        {SessionState.ACTIVE, SessionState.DISCONNECTED, SessionState.SHUTDOWN}
    ),
    SessionState.ACTIVE: frozenset({SessionState.DISCONNECTED, SessionState.SHUTDOWN}),
    SessionState.SHUTDOWN: frozenset(),
}


class SessionManager:
    """Own the transport's lifecycle.

    Faults reported by the transport never run the lifecycle inline: they
    queue a restart that the supervisor thread performs, so a restart is one
    bounded pass through the transition table rather than a re-entrant call
    from inside the transport.
    """

    def __init__(
        self,
        transport: Transport,
        credentials: str,
        on_message: Callable[[InboundMessage], None],
    ) -> None:
        self._transport = transport
        self._credentials = credentials
        self._on_message = on_message
        self._state = SessionState.DISCONNECTED
        self._state_changed = threading.Condition()
        self._lifecycle_lock = threading.Lock()
        self._restart_requested = threading.Event()
        self._restart_reason = ""
        self._supervisor: threading.Thread | None = None
        self._restarts = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def restarts(self) -> int:
        return self._restarts

    def _transition(self, target: SessionState) -> None:
        with self._state_changed:
            if target not in TRANSITIONS[self._state]:
                raise InvalidTransitionError(f"{self._state.value} -> {target.value}")
            logger.debug("session %s -> %s", self._state.value, target.value)
            self._state = target
            self._state_changed.notify_all()

    def wait_for_state(self, state: SessionState, timeout: float | None = None) -> bool:
        with self._state_changed:
            return self._state_changed.wait_for(lambda: self._state is state, timeout)

    def is_connected(self) -> bool:
        return self._state is SessionState.ACTIVE and self._transport.is_connected()

    def start(self) -> bool:
        """Run the lifecycle once and start the supervisor; True when ACTIVE."""
        if self._supervisor is None:
            self._supervisor = threading.Thread(target=self._supervise, name="session-supervisor", daemon=True)
            self._supervisor.start()
        return self._run_lifecycle()

    def restart(self, reason: str) -> None:
        """Ask the supervisor to tear the session down and set it up again."""
        if self._state is SessionState.SHUTDOWN:
            return
        self._restart_reason = reason
        self._restart_requested.set()

    def send_presence(self) -> None:
        self._transport.send_presence(True)

    def shutdown(self) -> None:
        with self._lifecycle_lock:
            if self._state is SessionState.SHUTDOWN:
                return
            self._transition(SessionState.SHUTDOWN)
        self._restart_requested.set()
        try:
            self._transport.send_presence(False)
        except Exception as exc:
            logger.debug("could not announce unavailability: %s", exc)
        self._disconnect_transport()
        if self._supervisor is not None and self._supervisor is not threading.current_thread():
            self._supervisor.join(timeout=5)
        logger.info("session shut down")

    def _supervise(self) -> None:
        while True:
            self._restart_requested.wait()
            self._restart_requested.clear()
            if self._state is SessionState.SHUTDOWN:
                return
            logger.info("restarting session: %s", self._restart_reason or "requested")
            self._restarts += 1
            self._run_lifecycle()

    def _run_lifecycle(self) -> bool:
        with self._lifecycle_lock:
            if self._state is SessionState.SHUTDOWN:
                return False
            if self._state is not SessionState.DISCONNECTED:
                self._disconnect_transport()
                self._transition(SessionState.DISCONNECTED)

            stage = "connect"
            try:
                self._transition(SessionState.CONNECTING)
                self._transport.connect()
                logger.info("connected to server")

                stage = "auth"
                self._transition(SessionState.AUTHENTICATING)
                self._transport.authenticate(self._credentials)
                logger.info("auth OK")

                stage = "register"
                self._register_handlers()
                self._transition(SessionState.REGISTERED)

                stage = "listen"
                self._transport.listen()

                stage = "presence"
                self._transport.send_presence(True)
                logger.info("sent initial presence")
                self._transition(SessionState.ACTIVE)
            except Exception as exc:
                logger.error("%s: %s", stage, exc)
                self._disconnect_transport()
                self._transition(SessionState.DISCONNECTED)
                return False

            logger.info("start to receive messages")
            return True

    def _register_handlers(self) -> None:
        self._transport.register_message_handler(self._handle_message)
        self._transport.register_subscription_handler(self._handle_subscription)
        self._transport.register_fault_handler(self._handle_fault)

    def _handle_message(self, message: InboundMessage) -> None:
        try:
            self._on_message(message)
        except Exception:
            logger.exception("failed to handle message from %s", message.origin)

    def _handle_subscription(self, request: SubscriptionRequest) -> None:
        try:
            if request.subscribe:
                logger.info("subscription request from %s", request.origin)
                self._transport.accept_subscription(request.origin)
            else:
                logger.info("unsubscription request from %s", request.origin)
                self._transport.drop_subscription(request.origin)
        except Exception:
            logger.exception("failed to handle subscription change from %s", request.origin)

    def _handle_fault(self, exc: BaseException, stage: str) -> None:
        logger.error("%s: %s", stage, exc)
        if self._lifecycle_lock.locked():
            # The running lifecycle pass will see the failure itself.
            return
        self.restart(f"{stage} fault")

    def _disconnect_transport(self) -> None:
        try:
            self._transport.disconnect()
        except Exception as exc:
            logger.warning("disconnect failed: %s", exc)
