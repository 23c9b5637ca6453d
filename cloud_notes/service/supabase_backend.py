"""Supabase implementation of the backend capability surface."""
from __future__ import annotations

import mimetypes
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs, urlsplit

from supabase import Client, ClientOptions, create_client

from cloud_notes.errors import ConfigurationError
from cloud_notes.logger import get_logger
from cloud_notes.models import AccessLevel, AuthEvent, AuthSession, SignInResult
from cloud_notes.service.auth_storage import FileAuthStorage
from cloud_notes.service.backend_iface import (
    AuthCategory,
    AuthSubscription,
    BackendClient,
    DataApiCategory,
    StorageCategory,
)
from cloud_notes.settings_manager import SettingsManager

_logger = get_logger("supabase")

# Supabase reports an account removed server side as USER_DELETED; for the UI that
# is a session that stopped being valid.
_EVENTS_BY_NAME: dict[str, AuthEvent] = {
    "SIGNED_IN": AuthEvent.SIGNED_IN,
    "SIGNED_OUT": AuthEvent.SIGNED_OUT,
    "USER_DELETED": AuthEvent.SESSION_EXPIRED,
}


def translate_auth_event(name: object) -> AuthEvent:
    return _EVENTS_BY_NAME.get(str(getattr(name, "value", name) or "").upper(), AuthEvent.OTHER)


def _to_auth_session(session: Any) -> AuthSession:
    if session is None:
        return AuthSession(is_signed_in=False)
    user = getattr(session, "user", None)
    return AuthSession(
        is_signed_in=True,
        user_id=getattr(user, "id", None),
        email=getattr(user, "email", None),
    )


class _SupabaseSubscription(AuthSubscription):
    def __init__(self, subscription: Any) -> None:
        self._subscription = subscription

    def unsubscribe(self) -> None:
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.unsubscribe()


class SupabaseAuth(AuthCategory):
    def __init__(self, client: Client, *, oauth_provider: str, redirect_to: str) -> None:
        self._client = client
        self._oauth_provider = oauth_provider
        self._redirect_to = redirect_to

    def fetch_session(self) -> AuthSession:
        return _to_auth_session(self._client.auth.get_session())

    def subscribe(
        self,
        on_event: Callable[[AuthEvent], None],
        on_error: Callable[[BaseException], None],
    ) -> AuthSubscription:
        handle: _SupabaseSubscription | None = None

        def _listener(event: Any, session: Any) -> None:  # noqa: ARG001
            try:
                on_event(translate_auth_event(event))
            except Exception as e:
                # A broken listener ends the stream; the facade decides what to do about it.
                if handle is not None:
                    handle.unsubscribe()
                on_error(e)

        handle = _SupabaseSubscription(self._client.auth.on_auth_state_change(_listener))
        return handle

    def sign_in(self, email: str | None = None, password: str | None = None) -> SignInResult:
        if email and password:
            response = self._client.auth.sign_in_with_password({"email": email, "password": password})
            return SignInResult(session=_to_auth_session(getattr(response, "session", None)))

        response = self._client.auth.sign_in_with_oauth(
            {
                "provider": self._oauth_provider,
                "options": {"redirect_to": self._redirect_to},
            }
        )
        return SignInResult(url=str(response.url))

    def complete_sign_in(self, callback_url: str) -> AuthSession:
        query = parse_qs(urlsplit(str(callback_url)).query)
        codes = query.get("code") or []
        if not codes:
            raise ValueError(f"No auth code in callback URL: {callback_url}")
        response = self._client.auth.exchange_code_for_session({"auth_code": codes[0]})
        return _to_auth_session(getattr(response, "session", None))

    def sign_out(self) -> None:
        self._client.auth.sign_out()


class SupabaseDataApi(DataApiCategory):
    def __init__(self, client: Client, *, table: str) -> None:
        self._client = client
        self._table = table

    def list_notes(self) -> list[dict[str, Any]]:
        response = self._client.table(self._table).select("*").execute()
        return list(response.data or [])

    def create_note(self, record: dict[str, Any]) -> dict[str, Any]:
        response = self._client.table(self._table).insert(record).execute()
        rows = list(response.data or [])
        return rows[0] if rows else dict(record)

    def delete_note(self, note_id: str) -> Any:
        response = self._client.table(self._table).delete().eq("id", note_id).execute()
        return response.data


class SupabaseStorage(StorageCategory):
    def __init__(self, client: Client, *, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    def object_path(self, key: str, access_level: AccessLevel) -> str:
        if access_level is AccessLevel.GUEST:
            return f"public/{key}"
        session = self._client.auth.get_session()
        user_id = getattr(getattr(session, "user", None), "id", None)
        if not user_id:
            raise PermissionError(f"{access_level.value} storage requires a signed-in user")
        return f"{access_level.value}/{user_id}/{key}"

    def upload(self, key: str, data: bytes, access_level: AccessLevel) -> Any:
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        return self._client.storage.from_(self._bucket).upload(
            path=self.object_path(key, access_level),
            file=bytes(data),
            file_options={"content-type": content_type, "upsert": "true"},
        )

    def download(self, key: str, access_level: AccessLevel) -> bytes:
        return bytes(self._client.storage.from_(self._bucket).download(self.object_path(key, access_level)))

    def remove(self, key: str, access_level: AccessLevel) -> Any:
        return self._client.storage.from_(self._bucket).remove([self.object_path(key, access_level)])


def create_backend(settings: SettingsManager) -> BackendClient:
    """Build a BackendClient from settings. Raises ConfigurationError."""

    url = settings.supabase_url
    key = settings.supabase_key
    if not url or not key:
        raise ConfigurationError("supabase_url and supabase_key must be configured")

    # PKCE verifier and session live on disk: the sign-in redirect arrives in a new process.
    storage = FileAuthStorage(settings.auth_storage_path)
    try:
        client = create_client(url, key, options=ClientOptions(flow_type="pkce", storage=storage))
    except Exception as e:
        raise ConfigurationError(f"Could not create Supabase client: {e}") from e

    _logger.debug("supabase client created for %s (auth storage %s)", url, storage.path)
    return BackendClient(
        auth=SupabaseAuth(
            client,
            oauth_provider=str(settings.get("oauth_provider")),
            redirect_to=str(settings.get("redirect_to")),
        ),
        api=SupabaseDataApi(client, table=str(settings.get("notes_table"))),
        storage=SupabaseStorage(client, bucket=str(settings.get("images_bucket"))),
    )
