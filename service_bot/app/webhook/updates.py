"""
Classification of inbound Telegram webhook updates.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Union


ChatId = Union[int, str]


class UpdateKind(str, Enum):
    """Recognized update variants."""
    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    CALLBACK_QUERY = "callback_query"
    INLINE_QUERY = "inline_query"
    CHANNEL_POST = "channel_post"
    CHAT_MEMBER_UPDATE = "chat_member_update"
    OTHER = "other"


# Payload field -> variant. Checked in order; the first populated field wins.
KIND_FIELDS: Tuple[Tuple[str, UpdateKind], ...] = (
    ("message", UpdateKind.MESSAGE),
    ("edited_message", UpdateKind.EDITED_MESSAGE),
    ("callback_query", UpdateKind.CALLBACK_QUERY),
    ("inline_query", UpdateKind.INLINE_QUERY),
    ("channel_post", UpdateKind.CHANNEL_POST),
    ("my_chat_member", UpdateKind.CHAT_MEMBER_UPDATE),
    ("chat_member", UpdateKind.CHAT_MEMBER_UPDATE),
)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _chat_id_of(container: Any) -> Optional[ChatId]:
    chat_id = _as_mapping(_as_mapping(container).get("chat")).get("id")
    return chat_id if isinstance(chat_id, (int, str)) else None


def extract_chat_id(kind: UpdateKind, body: Any) -> Optional[ChatId]:
    """Chat the bot should reply into, if the variant has one."""
    if kind == UpdateKind.CALLBACK_QUERY:
        return _chat_id_of(_as_mapping(body).get("message"))
    if kind in (UpdateKind.INLINE_QUERY, UpdateKind.OTHER):
        return None
    return _chat_id_of(body)


def extract_sender(body: Any) -> Tuple[Optional[str], Optional[str]]:
    """(sender id, first name) from the ``from`` block, when present."""
    sender = _as_mapping(_as_mapping(body).get("from"))
    sender_id = sender.get("id")
    first_name = sender.get("first_name")
    return (
        str(sender_id) if sender_id is not None else None,
        first_name if isinstance(first_name, str) else None,
    )


@dataclass(frozen=True)
class Update:
    """One classified webhook delivery."""
    kind: UpdateKind
    update_id: Optional[int] = None
    field_name: Optional[str] = None
    body: Any = field(default_factory=dict)
    chat_id: Optional[ChatId] = None
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Update":
        """Classify a raw update payload.

        Never raises: anything without a recognized, populated kind field is
        ``OTHER``. Empty or false values (``false``, ``""``, ``{}``) do not
        count as populated. A populated field whose value is not an object still
        selects its variant; handlers deal with the malformed body.
        """
        payload = _as_mapping(payload)
        update_id = payload.get("update_id")

        for field_name, kind in KIND_FIELDS:
            body = payload.get(field_name)
            if not body:
                continue
            sender_id, sender_name = extract_sender(body)
            return cls(
                kind=kind,
                update_id=update_id,
                field_name=field_name,
                body=body,
                chat_id=extract_chat_id(kind, body),
                sender_id=sender_id,
                sender_name=sender_name,
            )

        return cls(kind=UpdateKind.OTHER, update_id=update_id)


def recover_chat_id(payload: Any) -> Optional[ChatId]:
    """Best-effort chat lookup on a raw payload, used on the error path."""
    return Update.from_payload(payload).chat_id
