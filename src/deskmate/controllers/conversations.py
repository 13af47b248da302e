from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from deskmate.bridge import contracts
from deskmate.bridge.contracts import Role
from deskmate.bridge.core import BridgeError, CommandBridge

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 20


@dataclass(slots=True)
class Conversation:
    id: str
    title: str
    created_at: str


@dataclass(slots=True)
class Message:
    id: str
    role: Role
    content: str


class TurnState(enum.Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


def derive_title(text: str, max_chars: int = TITLE_MAX_CHARS) -> str:
    if len(text) > max_chars:
        return f"{text[:max_chars]}..."
    return text


class ConversationSessionManager:
    """Owns the conversation list and the active conversation's message log.

    Only the active conversation has messages; switching conversations starts
    from an empty log because history is not fetched back from the backend.
    """

    def __init__(
        self,
        bridge: CommandBridge,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.bridge = bridge
        self.clock = clock
        self.conversations: list[Conversation] = []
        self.active_id: str | None = None
        self.messages: list[Message] = []
        self.turn_state = TurnState.IDLE

    @property
    def is_sending(self) -> bool:
        return self.turn_state is TurnState.IN_FLIGHT

    @property
    def active(self) -> Conversation | None:
        for conversation in self.conversations:
            if conversation.id == self.active_id:
                return conversation
        return None

    def start_new_chat(self) -> None:
        self.active_id = None
        self.messages = []

    def switch_conversation(self, conversation: Conversation) -> None:
        self.active_id = conversation.id
        self.messages = []

    def _create_conversation(self, first_text: str) -> Conversation:
        now = self.clock()
        conversation = Conversation(
            id=str(int(now.timestamp() * 1000)),
            title=derive_title(first_text),
            created_at=now.strftime("%Y-%m-%d %H:%M"),
        )
        self.conversations.insert(0, conversation)
        self.active_id = conversation.id
        return conversation

    @staticmethod
    def _append(log: list[Message], role: Role, content: str) -> Message:
        message = Message(id=uuid.uuid4().hex, role=role, content=content)
        log.append(message)
        return message

    async def send(self, text: str) -> None:
        content = text.strip()
        if not content or self.is_sending:
            return

        self.turn_state = TurnState.IN_FLIGHT
        try:
            if self.active_id is None:
                self._create_conversation(content)
            # Replies land in the log the turn started in; switching away discards it.
            log = self.messages
            self._append(log, "user", content)
            payload = [{"role": item.role, "content": item.content} for item in log]
            try:
                raw = await self.bridge.invoke(contracts.CHAT_WITH_AI, messages=payload)
                reply = contracts.parse_response(contracts.REPLY_TEXT, raw, command=contracts.CHAT_WITH_AI)
            except BridgeError as exc:
                logger.warning("Chat turn failed: %s", exc)
                self._append(log, "system", f"Request failed: {exc}")
            else:
                self._append(log, "assistant", reply)
        finally:
            self.turn_state = TurnState.IDLE
