from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from core.enums import DialogStep

FLOW_FIELDS = (
    "location",
    "date",
    "time",
    "pending_friend_owner_ref",
    "pending_callback_ref",
)


@dataclass(slots=True)
class ConversationSession:
    chat_id: int
    user_id: int
    step: DialogStep = DialogStep.IDLE
    location: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    pending_friend_owner_ref: Optional[int] = None
    pending_callback_ref: Optional[int] = None
    venue_ref: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def session_key(self) -> str:
        return build_session_key(self.chat_id, self.user_id)

    def clear_flow(self) -> None:
        for name in FLOW_FIELDS:
            setattr(self, name, None)
        self.step = DialogStep.IDLE

    def to_payload(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "date": self.date,
            "time": self.time,
            "pending_friend_owner_ref": self.pending_friend_owner_ref,
            "pending_callback_ref": self.pending_callback_ref,
            "venue_ref": self.venue_ref,
        }

    @classmethod
    def from_payload(
        cls,
        chat_id: int,
        user_id: int,
        step: str,
        payload: dict[str, Any],
        created_at: str = "",
        updated_at: str = "",
    ) -> "ConversationSession":
        try:
            parsed_step = DialogStep(step)
        except ValueError:
            parsed_step = DialogStep.IDLE
        return cls(
            chat_id=int(chat_id),
            user_id=int(user_id),
            step=parsed_step,
            location=_optional_str(payload.get("location")),
            date=_optional_str(payload.get("date")),
            time=_optional_str(payload.get("time")),
            pending_friend_owner_ref=_optional_int(payload.get("pending_friend_owner_ref")),
            pending_callback_ref=_optional_int(payload.get("pending_callback_ref")),
            venue_ref=_optional_str(payload.get("venue_ref")),
            created_at=created_at,
            updated_at=updated_at,
        )


def build_session_key(chat_id: int, user_id: int) -> str:
    return f"{chat_id}:{user_id}"


def _optional_str(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return str(value)


def _optional_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
