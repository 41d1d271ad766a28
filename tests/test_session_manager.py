from __future__ import annotations

import unittest

from ratebot.errors import InvalidTransitionError, TransportError
from ratebot.session.heartbeat import HeartbeatLoop
from ratebot.session.manager import TRANSITIONS, SessionManager, SessionState
from ratebot.transport.base import InboundMessage
from tests.fakes import FakeTransport, wait_until


class SessionManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.received: list[InboundMessage] = []
        self.transport = FakeTransport()
        self.session = SessionManager(self.transport, "secret-token", self.received.append)

    def tearDown(self) -> None:
        self.session.shutdown()

    def test_start_reaches_active(self) -> None:
        self.assertIs(self.session.state, SessionState.DISCONNECTED)
        self.assertTrue(self.session.start())
        self.assertIs(self.session.state, SessionState.ACTIVE)
        self.assertEqual(self.transport.calls, ["connect", "authenticate", "listen"])
        self.assertEqual(self.transport.presence, [True])
        self.assertTrue(self.session.is_connected())

    def test_inbound_messages_reach_router(self) -> None:
        self.session.start()
        self.transport.deliver("help")
        self.assertEqual([m.body for m in self.received], ["help"])

    def test_router_failure_does_not_escape_handler(self) -> None:
        def explode(message: InboundMessage) -> None:
            raise RuntimeError("boom")

        session = SessionManager(self.transport, "secret-token", explode)
        session.start()
        with self.assertLogs("ratebot.session.manager", level="ERROR"):
            self.transport.deliver("help")
        session.shutdown()

    def test_connect_failure_leaves_disconnected(self) -> None:
        transport = FakeTransport(connect_failures=1)
        session = SessionManager(transport, "secret-token", self.received.append)
        with self.assertLogs("ratebot.session.manager", level="ERROR") as logs:
            self.assertFalse(session.start())
        self.assertIs(session.state, SessionState.DISCONNECTED)
        self.assertIn("connect: connection refused", logs.output[0])
        self.assertEqual(transport.presence, [])
        session.shutdown()

    def test_auth_failure_disconnects_transport(self) -> None:
        transport = FakeTransport(token="other")
        session = SessionManager(transport, "secret-token", self.received.append)
        with self.assertLogs("ratebot.session.manager", level="ERROR") as logs:
            self.assertFalse(session.start())
        self.assertIs(session.state, SessionState.DISCONNECTED)
        self.assertIn("auth: not authorized", logs.output[0])
        self.assertEqual(transport.calls, ["connect", "authenticate", "disconnect"])
        session.shutdown()

    def test_fault_restarts_lifecycle_and_heartbeat_resumes(self) -> None:
        heartbeat = HeartbeatLoop(self.session, interval_seconds=60)
        self.session.start()
        self.assertTrue(heartbeat.tick())

        with self.assertLogs("ratebot.session.manager", level="INFO"):
            self.transport.fault(TransportError("stream closed"), "polling")
            self.assertTrue(
                wait_until(
                    lambda: self.transport.calls.count("connect") == 2
                    and self.session.state is SessionState.ACTIVE
                )
            )

        self.assertEqual(
            self.transport.calls,
            ["connect", "authenticate", "listen", "disconnect", "connect", "authenticate", "listen"],
        )
        self.assertEqual(self.session.restarts, 1)
        self.assertTrue(heartbeat.tick())
        self.assertEqual(self.transport.presence, [True, True, True, True])

    def test_restart_request_recovers_from_failed_start(self) -> None:
        transport = FakeTransport(connect_failures=1)
        session = SessionManager(transport, "secret-token", self.received.append)
        with self.assertLogs("ratebot.session.manager", level="INFO"):
            session.start()
            session.restart("operator")
            self.assertTrue(session.wait_for_state(SessionState.ACTIVE, timeout=3))
        session.shutdown()

    def test_subscription_requests_are_accepted(self) -> None:
        self.session.start()
        with self.assertLogs("ratebot.session.manager", level="INFO"):
            self.transport.subscribe("dave")
            self.transport.subscribe("erin", subscribe=False)
        self.assertEqual(self.transport.accepted, ["dave"])
        self.assertEqual(self.transport.dropped, ["erin"])

    def test_shutdown_is_terminal(self) -> None:
        self.session.start()
        self.session.shutdown()
        self.assertIs(self.session.state, SessionState.SHUTDOWN)
        self.assertEqual(self.transport.presence[-1], False)
        self.assertEqual(self.transport.calls[-1], "disconnect")

        self.session.restart("ignored")
        self.assertFalse(self.session.start())
        self.assertEqual(self.session.restarts, 0)
        self.assertIs(self.session.state, SessionState.SHUTDOWN)

    def test_illegal_transition_is_rejected(self) -> None:
        with self.assertRaises(InvalidTransitionError):
            self.session._transition(SessionState.ACTIVE)

    def test_shutdown_state_has_no_exits(self) -> None:
        self.assertEqual(TRANSITIONS[SessionState.SHUTDOWN], frozenset())
        for state in SessionState:
            if state is not SessionState.SHUTDOWN:
                self.assertIn(SessionState.SHUTDOWN, TRANSITIONS[state])


class HeartbeatLoopTests(unittest.TestCase):
    def test_lost_connection_is_only_logged(self) -> None:
        transport = FakeTransport()
        session = SessionManager(transport, "secret-token", lambda message: None)
        heartbeat = HeartbeatLoop(session, interval_seconds=60)
        with self.assertLogs("ratebot.session.heartbeat", level="WARNING") as logs:
            self.assertFalse(heartbeat.tick())
        self.assertIn("lost connection", logs.output[0])
        self.assertEqual(transport.calls, [])
        self.assertEqual(transport.presence, [])

    def test_loop_sends_presence_on_interval(self) -> None:
        transport = FakeTransport()
        session = SessionManager(transport, "secret-token", lambda message: None)
        session.start()
        heartbeat = HeartbeatLoop(session, interval_seconds=0.02)
        heartbeat.start()
        try:
            self.assertTrue(wait_until(lambda: len(transport.presence) >= 3))
        finally:
            heartbeat.stop()
            session.shutdown()


if __name__ == "__main__":
    unittest.main()
