from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class ClientMessageType(StrEnum):
    """Outbound message types understood by the session server."""

    START_GAME = "start_game"
    NEXT_QUESTION = "next_question"
    PREVIOUS_QUESTION = "previous_question"
    END_GAME = "end_game"
    PAUSE_GAME = "pause_game"
    RESUME_GAME = "resume_game"
    SUBMIT_ANSWER = "submit_answer"
    BUZZER_PRESS = "buzzer_press"
    GET_SESSION_STATS = "get_session_stats"
    CONNECTION_ACK = "connection_ack"
    PING = "ping"


class ServerEventType(StrEnum):
    """Inbound event types the reconciler knows how to apply."""

    INITIAL_STATE = "initial_state"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    ROSTER_UPDATE = "roster_update"
    GAME_STARTED = "game_started"
    GAME_PAUSED = "game_paused"
    GAME_RESUMED = "game_resumed"
    GAME_ENDED = "game_ended"
    QUESTION_STARTED = "question_started"
    NEW_QUESTION = "new_question"
    QA_QUESTION = "qa_question"
    PLAYER_ANSWERED = "player_answered"
    QA_ANSWER_SUBMITTED = "qa_answer_submitted"
    QA_UPDATE = "qa_update"
    BROADCAST_STATE = "broadcast_state"
    SESSION_STATS = "session_stats"
    GAME_STATUS_UPDATE = "game_status_update"
    CONNECTION_ESTABLISHED = "connection_established"
    PONG = "pong"
    ERROR = "error"


class ClientRole(StrEnum):
    """Who is on the other end of the push connection."""

    HOST = "web"
    PLAYER = "mobile"


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


class OutboundEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ClientMessageType
    data: dict[str, Any] | None = None
    timestamp: int  # epoch milliseconds


class SubmitAnswerData(BaseModel):
    answer: str
    question_id: str = Field(min_length=1)


class ConnectionAckData(BaseModel):
    ws_id: str = Field(min_length=1)
    timestamp: str


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


class ServerEvent(BaseModel):
    """Base class for inbound events.

    Payload shapes differ between producers, so ``data`` is kept as the raw
    mapping and normalized once by the reconciler.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: float | None = None

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_missing_data(cls, v: object) -> object:
        # Some producers send "data": null or omit it entirely.
        return {} if v is None else v


class InitialStateEvent(ServerEvent):
    type: Literal[ServerEventType.INITIAL_STATE] = ServerEventType.INITIAL_STATE


class PlayerJoinedEvent(ServerEvent):
    type: Literal[ServerEventType.PLAYER_JOINED] = ServerEventType.PLAYER_JOINED


class PlayerLeftEvent(ServerEvent):
    type: Literal[ServerEventType.PLAYER_LEFT] = ServerEventType.PLAYER_LEFT

    @property
    def player_id(self) -> str | None:
        value = self.data.get("player_id") or self.data.get("id")
        return str(value) if value else None


class RosterUpdateEvent(ServerEvent):
    type: Literal[ServerEventType.ROSTER_UPDATE] = ServerEventType.ROSTER_UPDATE


class GameStartedEvent(ServerEvent):
    type: Literal[ServerEventType.GAME_STARTED] = ServerEventType.GAME_STARTED


class GamePausedEvent(ServerEvent):
    type: Literal[ServerEventType.GAME_PAUSED] = ServerEventType.GAME_PAUSED


class GameResumedEvent(ServerEvent):
    type: Literal[ServerEventType.GAME_RESUMED] = ServerEventType.GAME_RESUMED


class GameEndedEvent(ServerEvent):
    type: Literal[ServerEventType.GAME_ENDED] = ServerEventType.GAME_ENDED


class QuestionStartedEvent(ServerEvent):
    """A new question is live. Several producers announce it under different names."""

    type: Literal[
        ServerEventType.QUESTION_STARTED,
        ServerEventType.NEW_QUESTION,
        ServerEventType.QA_QUESTION,
    ]


class PlayerAnsweredEvent(ServerEvent):
    type: Literal[ServerEventType.PLAYER_ANSWERED, ServerEventType.QA_ANSWER_SUBMITTED]

    @property
    def player_id(self) -> str | None:
        value = self.data.get("player_id")
        return str(value) if value else None


class StateBroadcastEvent(ServerEvent):
    """Partial state broadcast that may carry a question, players and stats."""

    type: Literal[ServerEventType.QA_UPDATE, ServerEventType.BROADCAST_STATE]


class SessionStatsEvent(ServerEvent):
    type: Literal[ServerEventType.SESSION_STATS] = ServerEventType.SESSION_STATS


class GameStatusUpdateEvent(ServerEvent):
    type: Literal[ServerEventType.GAME_STATUS_UPDATE] = ServerEventType.GAME_STATUS_UPDATE


class ConnectionEstablishedEvent(ServerEvent):
    type: Literal[ServerEventType.CONNECTION_ESTABLISHED] = ServerEventType.CONNECTION_ESTABLISHED

    @property
    def ack_id(self) -> str | None:
        """The ws_id to acknowledge, or None when the server did not ask for an ack."""
        if not self.data.get("requires_ack"):
            return None
        ws_id = self.data.get("ws_id")
        return str(ws_id) if ws_id else None


class PongEvent(ServerEvent):
    type: Literal[ServerEventType.PONG] = ServerEventType.PONG


class ErrorEvent(ServerEvent):
    type: Literal[ServerEventType.ERROR] = ServerEventType.ERROR

    @property
    def message(self) -> str:
        return str(self.data.get("message") or "Unknown error")


class UnknownEvent(ServerEvent):
    """Any event type this client does not recognize. Ignored downstream."""


KnownServerEvent = Annotated[
    InitialStateEvent
    | PlayerJoinedEvent
    | PlayerLeftEvent
    | RosterUpdateEvent
    | GameStartedEvent
    | GamePausedEvent
    | GameResumedEvent
    | GameEndedEvent
    | QuestionStartedEvent
    | PlayerAnsweredEvent
    | StateBroadcastEvent
    | SessionStatsEvent
    | GameStatusUpdateEvent
    | ConnectionEstablishedEvent
    | PongEvent
    | ErrorEvent,
    Field(discriminator="type"),
]

_known_event_adapter = TypeAdapter(KnownServerEvent)
_KNOWN_TYPES = frozenset(ServerEventType)


def parse_server_event(envelope: dict[str, Any]) -> ServerEvent:
    """Parse a decoded envelope into a typed ServerEvent.

    Unrecognized types become UnknownEvent instead of failing, so the server
    can introduce new message types without breaking older clients.
    Raises pydantic.ValidationError when the envelope itself is malformed.
    """
    event_type = envelope.get("type")
    if isinstance(event_type, str) and event_type in _KNOWN_TYPES:
        return _known_event_adapter.validate_python(envelope)
    return UnknownEvent.model_validate(envelope)
