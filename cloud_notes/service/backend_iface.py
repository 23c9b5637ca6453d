"""Capability surface of the managed backend, as seen by the UI facade.

Every method here blocks until the backend answers; the facade always calls
them from a worker thread (see cloud_notes.app.requests). Implementations
raise on failure and never touch Qt objects.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cloud_notes.models import AccessLevel, AuthEvent, AuthSession, SignInResult


class AuthSubscription(ABC):
    """Handle of a live auth event subscription."""

    @abstractmethod
    def unsubscribe(self) -> None:
        raise NotImplementedError()


class AuthCategory(ABC):
    @abstractmethod
    def fetch_session(self) -> AuthSession:
        """Current session state (signed in or not)."""
        raise NotImplementedError()

    @abstractmethod
    def subscribe(
        self,
        on_event: Callable[[AuthEvent], None],
        on_error: Callable[[BaseException], None],
    ) -> AuthSubscription:
        """Start delivering auth events.

        Callbacks may run on any thread. After on_error the subscription is dead.
        """
        raise NotImplementedError()

    @abstractmethod
    def sign_in(self, email: str | None = None, password: str | None = None) -> SignInResult:
        raise NotImplementedError()

    @abstractmethod
    def complete_sign_in(self, callback_url: str) -> AuthSession:
        """Finish a hosted sign-in from the redirect URL the browser came back with."""
        raise NotImplementedError()

    @abstractmethod
    def sign_out(self) -> None:
        raise NotImplementedError()


class DataApiCategory(ABC):
    @abstractmethod
    def list_notes(self) -> list[dict[str, Any]]:
        raise NotImplementedError()

    @abstractmethod
    def create_note(self, record: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def delete_note(self, note_id: str) -> Any:
        raise NotImplementedError()


class StorageCategory(ABC):
    @abstractmethod
    def upload(self, key: str, data: bytes, access_level: AccessLevel) -> Any:
        raise NotImplementedError()

    @abstractmethod
    def download(self, key: str, access_level: AccessLevel) -> bytes:
        raise NotImplementedError()

    @abstractmethod
    def remove(self, key: str, access_level: AccessLevel) -> Any:
        raise NotImplementedError()


@dataclass(frozen=True)
class BackendClient:
    auth: AuthCategory
    api: DataApiCategory
    storage: StorageCategory
