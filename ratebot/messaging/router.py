"""Classify inbound chat text and dispatch it."""

from __future__ import annotations

import logging
import re
from typing import Callable

from ratebot.conversion.worker import ConversionJob, ConversionWorker
from ratebot.errors import QueueFullError, WorkerStoppedError
from ratebot.messaging.response import DirectResponse, RelayedResponse, ResponseChannel
from ratebot.transport.base import CHAT, InboundMessage, Transport

logger = logging.getLogger(__name__)

LIST_PATTERN = re.compile(r"list|currenc(y|ies)|codes?", re.IGNORECASE)
HELP_PATTERN = re.compile(r"help|usage", re.IGNORECASE)
WHO_PATTERN = re.compile(r"who", re.IGNORECASE)
CONVERSION_PATTERN = re.compile(r"(\d[\d,]*) ([a-z]{3}) ([a-z]{3})", re.IGNORECASE)

AMOUNT_TOO_LARGE = "The amount is too large!"
NOT_A_CURRENCY = " seems not to be a supported currency code."
QUEUE_BUSY = "Too many conversions in progress, please try again later."
SHUTTING_DOWN = "The bot is shutting down, please try again later."

Action = Callable[[InboundMessage, ResponseChannel], None]
Predicate = Callable[[str], bool]


class CommandRouter:
    """Route messages through an ordered table of (predicate, action) pairs.

    The first matching predicate wins; a body that matches none of them gets
    the usage text.
    """

    def __init__(
        self,
        transport: Transport,
        worker: ConversionWorker,
        currencies: frozenset[str],
        *,
        amount_limit: int,
        relay_bridges: frozenset[str] = frozenset(),
        relay_confirmation: str | None = None,
    ) -> None:
        self._transport = transport
        self._worker = worker
        self._currencies = currencies
        self._amount_limit = amount_limit
        self._relay_bridges = relay_bridges
        self._relay_confirmation = relay_confirmation
        self._routes: list[tuple[Predicate, Action]] = [
            (LIST_PATTERN.search, self._list),
            (HELP_PATTERN.search, self._usage),
            (WHO_PATTERN.search, self._who),
            (CONVERSION_PATTERN.search, self._convert),
        ]

    def response_for(self, message: InboundMessage) -> ResponseChannel:
        if message.origin in self._relay_bridges and message.requester:
            return RelayedResponse(self._transport, message.origin, message.requester)
        return DirectResponse(self._transport, message.origin)

    def _ignored(self, message: InboundMessage) -> bool:
        if message.kind != CHAT:
            return True
        if not message.body or not message.body.strip():
            return True
        if self._relay_confirmation and self._relay_confirmation in message.body:
            return True
        return False

    def handle(self, message: InboundMessage) -> None:
        if self._ignored(message):
            return
        response = self.response_for(message)
        for predicate, action in self._routes:
            if predicate(message.body):
                action(message, response)
                return
        response.usage()

    def _list(self, message: InboundMessage, response: ResponseChannel) -> None:
        response.currency_list(self._currencies)

    def _usage(self, message: InboundMessage, response: ResponseChannel) -> None:
        response.usage()

    def _who(self, message: InboundMessage, response: ResponseChannel) -> None:
        response.about()

    def _convert(self, message: InboundMessage, response: ResponseChannel) -> None:
        match = CONVERSION_PATTERN.search(message.body)
        if match is None:
            response.usage()
            return
        amount = int(match.group(1).replace(",", ""))
        base = match.group(2).upper()
        target = match.group(3).upper()

        if amount > self._amount_limit:
            response.error(AMOUNT_TOO_LARGE)
            return
        if amount <= 0 or not base or not target:
            response.usage()
            return
        if base not in self._currencies:
            response.error(base + NOT_A_CURRENCY)
            return
        if target not in self._currencies:
            response.error(target + NOT_A_CURRENCY)
            return

        logger.info("%s: %s %s %s", response.kind, amount, base, target)
        try:
            self._worker.enqueue(ConversionJob(response=response, amount=amount, base=base, target=target))
        except QueueFullError as exc:
            logger.warning("rejected %s %s %s: %s", amount, base, target, exc)
            response.error(QUEUE_BUSY)
        except WorkerStoppedError:
            logger.warning("rejected %s %s %s: worker stopped", amount, base, target)
            response.error(SHUTTING_DOWN)
