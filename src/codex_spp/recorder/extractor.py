"""Map loosely structured history records to role-tagged chat messages."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

from ..models import EventType

TRUNCATION_MARKER = "\n...[truncated]"

ROLE_POINTERS = ("/role", "/message/role", "/payload/role", "/item/role", "/author/role")
CONTENT_POINTERS = (
    "/content",
    "/message/content",
    "/payload/content",
    "/item/content",
    "/text",
    "/message/text",
    "/payload/text",
)
ID_POINTERS = ("/id", "/message/id", "/payload/id", "/item/id")

_PART_TEXT_KEYS = ("text", "content", "input_text", "output_text", "value")


@dataclass(slots=True)
class ChatMessage:
    role: str
    event_type: EventType
    content: str
    truncated: bool
    message_id: str | None
    raw: Any | None

    def payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.message_id is not None:
            body["message_id"] = self.message_id
        if self.truncated:
            body["truncated"] = True
        if self.raw is not None:
            body["raw"] = self.raw
        return body


def resolve_pointer(value: Any, pointer: str) -> Any:
    """Resolve an RFC 6901 JSON pointer, returning ``None`` when any step is missing."""

    if pointer == "":
        return value
    current = value
    for token in pointer.lstrip("/").split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict):
            if token not in current:
                return None
            current = current[token]
        elif isinstance(current, list):
            if not token.isdigit() or int(token) >= len(current):
                return None
            current = current[int(token)]
        else:
            return None
    return current


def first_pointer(
    value: Any,
    pointers: Iterable[str],
    accept: Callable[[Any], bool] | None = None,
) -> Any:
    for pointer in pointers:
        found = resolve_pointer(value, pointer)
        if found is not None and (accept is None or accept(found)):
            return found
    return None


def flatten_content(value: Any) -> str:
    """Flatten string, array-of-parts, or nested object content into text."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = [flatten_content(item) for item in value]
        return "\n".join(part for part in parts if part)
    if isinstance(value, dict):
        for key in _PART_TEXT_KEYS:
            if key in value:
                text = flatten_content(value[key])
                if text:
                    return text
        return ""
    return ""


def first_content(value: Any) -> str:
    """Text of the first content candidate that flattens to something non-blank."""

    for pointer in CONTENT_POINTERS:
        text = flatten_content(resolve_pointer(value, pointer))
        if text.strip():
            return text
    return ""


def truncate_utf8(text: str, max_bytes: int, marker: str = TRUNCATION_MARKER) -> tuple[str, bool]:
    """Cut ``text`` to at most ``max_bytes`` UTF-8 bytes including ``marker``.

    Cuts only on character boundaries.
    """

    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text, False
    marker_bytes = marker.encode("utf-8")
    if len(marker_bytes) > max_bytes:
        return encoded[:max_bytes].decode("utf-8", errors="ignore"), True
    budget = max_bytes - len(marker_bytes)
    head = encoded[:budget].decode("utf-8", errors="ignore")
    return head + marker, True


def _role_event(role: Any) -> EventType | None:
    if not isinstance(role, str):
        return None
    lowered = role.lower()
    if "assistant" in lowered:
        return EventType.CHAT_ASSISTANT
    if "user" in lowered:
        return EventType.CHAT_USER
    return None


class ExtractionStrategy(Protocol):
    def extract(self, record: Any, max_bytes: int) -> list[ChatMessage] | None:
        """Return messages, or ``None`` when the strategy does not apply to ``record``."""


class SingleMessageStrategy:
    """Treat the record itself as one message."""

    def extract(self, record: Any, max_bytes: int) -> list[ChatMessage] | None:
        if not isinstance(record, dict):
            return None
        message = self.message_from(record, max_bytes)
        return [message] if message is not None else []

    @staticmethod
    def message_from(value: Any, max_bytes: int) -> ChatMessage | None:
        role = first_pointer(value, ROLE_POINTERS, accept=lambda found: isinstance(found, str))
        event_type = _role_event(role)
        if event_type is None:
            return None

        content = first_content(value)
        if not content.strip():
            return None
        content, truncated = truncate_utf8(content, max_bytes)

        message_id = first_pointer(value, ID_POINTERS)
        if message_id is not None and not isinstance(message_id, str):
            message_id = str(message_id)

        raw: Any | None = value
        serialized = json.dumps(value, ensure_ascii=False)
        if len(serialized.encode("utf-8")) > max_bytes:
            raw = None

        return ChatMessage(
            role=role,
            event_type=event_type,
            content=content,
            truncated=truncated,
            message_id=message_id,
            raw=raw,
        )


class MessagesArrayStrategy:
    """Records carrying a ``messages`` array are processed element-wise."""

    def extract(self, record: Any, max_bytes: int) -> list[ChatMessage] | None:
        if not isinstance(record, dict) or not isinstance(record.get("messages"), list):
            return None
        messages: list[ChatMessage] = []
        for item in record["messages"]:
            if not isinstance(item, dict):
                continue
            message = SingleMessageStrategy.message_from(item, max_bytes)
            if message is not None:
                messages.append(message)
        return messages


DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (MessagesArrayStrategy(), SingleMessageStrategy())


class ChatExtractor:
    """Try each strategy in order; the first one that applies wins."""

    def __init__(
        self,
        max_bytes: int,
        strategies: Iterable[ExtractionStrategy] | None = None,
    ) -> None:
        self._max_bytes = max_bytes
        self._strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES

    def extract(self, record: Any) -> list[ChatMessage]:
        for strategy in self._strategies:
            messages = strategy.extract(record, self._max_bytes)
            if messages is not None:
                return messages
        return []


__all__ = [
    "ChatExtractor",
    "ChatMessage",
    "ExtractionStrategy",
    "MessagesArrayStrategy",
    "SingleMessageStrategy",
    "TRUNCATION_MARKER",
    "flatten_content",
    "first_content",
    "first_pointer",
    "resolve_pointer",
    "truncate_utf8",
]
