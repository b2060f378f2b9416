"""UI-facing command verbs, sent over the push connection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

from trivia.exceptions import NotConnectedError
from trivia.messaging.codec import encode_command
from trivia.messaging.types import ClientMessageType, SubmitAnswerData

if TYPE_CHECKING:
    from trivia.transport.connection import ConnectionState

logger = structlog.get_logger()


class CommandChannel(Protocol):
    """The slice of TransportConnection the dispatcher needs."""

    @property
    def state(self) -> ConnectionState: ...

    @property
    def is_open(self) -> bool: ...

    async def send(self, text: str) -> bool: ...


class CommandDispatcher:
    """
    Encode and send UI commands, fire-and-forget.

    Confirmation arrives later as an inbound event, never as a reply. When the
    connection is not open every verb raises NotConnectedError before anything
    is encoded; nothing is queued for later delivery.
    """

    def __init__(self, channel: CommandChannel) -> None:
        self._channel = channel

    async def start_round(self) -> None:
        await self._dispatch(ClientMessageType.START_GAME)

    async def advance_question(self) -> None:
        await self._dispatch(ClientMessageType.NEXT_QUESTION)

    async def previous_question(self) -> None:
        await self._dispatch(ClientMessageType.PREVIOUS_QUESTION)

    async def end_round(self) -> None:
        await self._dispatch(ClientMessageType.END_GAME)

    async def pause_round(self) -> None:
        await self._dispatch(ClientMessageType.PAUSE_GAME)

    async def resume_round(self) -> None:
        await self._dispatch(ClientMessageType.RESUME_GAME)

    async def submit_answer(self, question_id: str, value: str) -> None:
        self._require_open(ClientMessageType.SUBMIT_ANSWER)
        payload = SubmitAnswerData(answer=value, question_id=question_id)
        await self._dispatch(ClientMessageType.SUBMIT_ANSWER, payload.model_dump())

    async def press_buzzer(self) -> None:
        await self._dispatch(ClientMessageType.BUZZER_PRESS)

    async def request_stats(self) -> None:
        await self._dispatch(ClientMessageType.GET_SESSION_STATS)

    def _require_open(self, verb: ClientMessageType) -> None:
        if not self._channel.is_open:
            logger.warning("command rejected, not connected", verb=verb, state=self._channel.state)
            raise NotConnectedError(verb=verb, state=self._channel.state)

    async def _dispatch(self, verb: ClientMessageType, payload: dict[str, Any] | None = None) -> None:
        self._require_open(verb)
        if not await self._channel.send(encode_command(verb, payload)):
            # the connection dropped between the check and the send
            raise NotConnectedError(verb=verb, state=self._channel.state)
        logger.debug("command sent", verb=verb)
