"""
Outbound message shapes. Callers hand us either plain text or a provider
message object; `as_message` settles which one exactly once, at the API
boundary, so the dispatcher and push clients only ever see these classes.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from .exceptions import ValidationError

# LINE accepts at most five message objects per push/multicast request
MAX_MESSAGES_PER_REQUEST = 5
TEXT_MAX_LENGTH = 5000


@dataclass(frozen=True)
class TextMessage:
    text: str

    def to_payload(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class StructuredMessage:
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {**self.payload, "type": self.kind}


Message = Union[TextMessage, StructuredMessage]


def as_message(value) -> Message:
    if isinstance(value, (TextMessage, StructuredMessage)):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise ValidationError("message text is empty")
        if len(value) > TEXT_MAX_LENGTH:
            raise ValidationError(f"message text exceeds {TEXT_MAX_LENGTH} characters")
        return TextMessage(value)
    if isinstance(value, dict):
        kind = value.get("type")
        if not kind or not isinstance(kind, str):
            raise ValidationError("structured message requires a 'type'")
        if kind == "text":
            return as_message(value.get("text") or "")
        payload = {k: v for k, v in value.items() if k != "type"}
        return StructuredMessage(kind=kind, payload=payload)
    raise ValidationError(f"unsupported message value: {type(value).__name__}")


def as_messages(values) -> List[Message]:
    if values is None:
        return []
    if isinstance(values, (str, dict, TextMessage, StructuredMessage)):
        values = [values]
    messages = [as_message(v) for v in values]
    if len(messages) > MAX_MESSAGES_PER_REQUEST:
        raise ValidationError(f"at most {MAX_MESSAGES_PER_REQUEST} messages per broadcast")
    return messages
