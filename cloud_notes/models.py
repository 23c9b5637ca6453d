from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SignInStatus(Enum):
    UNKNOWN = "unknown"
    SIGNED_IN = "signedIn"
    SIGNED_OUT = "signedOut"

    @classmethod
    def from_bool(cls, signed_in: bool) -> SignInStatus:
        return cls.SIGNED_IN if signed_in else cls.SIGNED_OUT


class AuthEvent(Enum):
    """Auth state change notifications, reduced to what the UI cares about."""

    SIGNED_IN = "signedIn"
    SIGNED_OUT = "signedOut"
    SESSION_EXPIRED = "sessionExpired"
    OTHER = "other"


class AccessLevel(Enum):
    GUEST = "guest"
    PROTECTED = "protected"
    PRIVATE = "private"


@dataclass(frozen=True)
class AuthSession:
    is_signed_in: bool
    user_id: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class SignInResult:
    # Hosted (browser) sign-in hands back a URL to open; credential sign-in a session.
    url: str | None = None
    session: AuthSession | None = None


@dataclass
class Note:
    """A note as shown by the UI.

    `data` keeps the backend-native record the note was built from (or will be
    sent as); the rest of the application treats it as opaque.
    """

    id: str
    name: str
    description: str = ""
    image_name: str | None = None
    image: bytes | None = field(default=None, repr=False)
    data: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def create(cls, name: str, description: str = "", image_name: str | None = None) -> Note:
        note = cls(id=str(uuid.uuid4()), name=str(name), description=str(description or ""), image_name=image_name)
        note.data = note.to_record()
        return note

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Note:
        image_name = record.get("image")
        return cls(
            id=str(record.get("id") or ""),
            name=str(record.get("name") or ""),
            description=str(record.get("description") or ""),
            image_name=str(image_name) if image_name else None,
            data=dict(record),
        )

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {**self.data, "id": self.id, "name": self.name, "description": self.description}
        if self.image_name:
            record["image"] = self.image_name
        else:
            record.pop("image", None)
        return record
