from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role(self.role))

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


class Conversation:
    """Ordered message history. Append-only apart from ``remove_last``."""

    def __init__(self, messages: list[Message] | None = None):
        self._messages: list[Message] = list(messages or [])

    @classmethod
    def from_prompt(cls, prompt: str, system_message: str | None = None) -> Conversation:
        conversation = cls()
        if system_message:
            conversation.add_system_message(system_message)
        conversation.add_user_message(prompt)
        return conversation

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def add_message(self, role: Role | str, content: str) -> Message:
        message = Message(Role(role), content)
        self._messages.append(message)
        return message

    def add_system_message(self, content: str) -> Message:
        return self.add_message(Role.SYSTEM, content)

    def add_user_message(self, content: str) -> Message:
        return self.add_message(Role.USER, content)

    def add_assistant_message(self, content: str) -> Message:
        return self.add_message(Role.ASSISTANT, content)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def remove_last(self) -> Message:
        if not self._messages:
            raise IndexError("remove_last from empty conversation")
        return self._messages.pop()

    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def copy(self) -> Conversation:
        return Conversation(self._messages)

    def to_dicts(self) -> list[dict]:
        return [m.to_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Conversation):
            return NotImplemented
        return self._messages == other._messages

    def __repr__(self) -> str:
        return f"Conversation(messages={self._messages!r})"
