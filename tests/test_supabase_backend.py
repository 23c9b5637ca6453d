from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from cloud_notes.errors import ConfigurationError
from cloud_notes.models import AccessLevel, AuthEvent
from cloud_notes.service import supabase_backend as sb
from cloud_notes.service.auth_storage import FileAuthStorage
from cloud_notes.settings_manager import SettingsManager


def _signed_in_session(user_id: str = "user-1") -> SimpleNamespace:
    return SimpleNamespace(user=SimpleNamespace(id=user_id, email="user@example.test"))


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("SIGNED_IN", AuthEvent.SIGNED_IN),
        ("SIGNED_OUT", AuthEvent.SIGNED_OUT),
        ("USER_DELETED", AuthEvent.SESSION_EXPIRED),
        ("TOKEN_REFRESHED", AuthEvent.OTHER),
        ("INITIAL_SESSION", AuthEvent.OTHER),
        ("", AuthEvent.OTHER),
    ],
)
def test_translate_auth_event(name: str, expected: AuthEvent) -> None:
    assert sb.translate_auth_event(name) is expected


def test_fetch_session_maps_none_and_user() -> None:
    client = MagicMock()
    auth = sb.SupabaseAuth(client, oauth_provider="github", redirect_to="cloudnotes://cb")

    client.auth.get_session.return_value = None
    assert auth.fetch_session().is_signed_in is False

    client.auth.get_session.return_value = _signed_in_session()
    session = auth.fetch_session()
    assert session.is_signed_in is True
    assert session.user_id == "user-1"
    assert session.email == "user@example.test"


def test_subscribe_translates_events_and_unsubscribes() -> None:
    client = MagicMock()
    raw_sub = MagicMock()
    client.auth.on_auth_state_change.return_value = raw_sub
    auth = sb.SupabaseAuth(client, oauth_provider="github", redirect_to="cloudnotes://cb")
    events: list[AuthEvent] = []
    errors: list[BaseException] = []

    handle = auth.subscribe(events.append, errors.append)
    listener = client.auth.on_auth_state_change.call_args.args[0]
    listener("SIGNED_OUT", None)
    listener("TOKEN_REFRESHED", _signed_in_session())

    assert events == [AuthEvent.SIGNED_OUT, AuthEvent.OTHER]
    assert errors == []

    handle.unsubscribe()
    handle.unsubscribe()
    raw_sub.unsubscribe.assert_called_once()


def test_failing_listener_terminates_stream() -> None:
    client = MagicMock()
    raw_sub = MagicMock()
    client.auth.on_auth_state_change.return_value = raw_sub
    auth = sb.SupabaseAuth(client, oauth_provider="github", redirect_to="cloudnotes://cb")
    errors: list[BaseException] = []

    def _broken(_event: AuthEvent) -> None:
        raise RuntimeError("listener crashed")

    auth.subscribe(_broken, errors.append)
    client.auth.on_auth_state_change.call_args.args[0]("SIGNED_IN", None)

    assert len(errors) == 1 and "listener crashed" in str(errors[0])
    raw_sub.unsubscribe.assert_called_once()


def test_sign_in_with_password_or_hosted_page() -> None:
    client = MagicMock()
    client.auth.sign_in_with_password.return_value = SimpleNamespace(session=_signed_in_session())
    client.auth.sign_in_with_oauth.return_value = SimpleNamespace(provider="github", url="https://gh.test/authorize")
    auth = sb.SupabaseAuth(client, oauth_provider="github", redirect_to="cloudnotes://cb")

    direct = auth.sign_in("user@example.test", "secret")
    assert direct.url is None
    assert direct.session is not None and direct.session.is_signed_in
    client.auth.sign_in_with_password.assert_called_once_with({"email": "user@example.test", "password": "secret"})

    hosted = auth.sign_in()
    assert hosted.url == "https://gh.test/authorize"
    client.auth.sign_in_with_oauth.assert_called_once_with(
        {"provider": "github", "options": {"redirect_to": "cloudnotes://cb"}}
    )


def test_complete_sign_in_exchanges_code() -> None:
    client = MagicMock()
    client.auth.exchange_code_for_session.return_value = SimpleNamespace(session=_signed_in_session("u9"))
    auth = sb.SupabaseAuth(client, oauth_provider="github", redirect_to="cloudnotes://cb")

    session = auth.complete_sign_in("cloudnotes://cb?code=xyz&state=1")

    assert session.user_id == "u9"
    client.auth.exchange_code_for_session.assert_called_once_with({"auth_code": "xyz"})

    with pytest.raises(ValueError):
        auth.complete_sign_in("cloudnotes://cb?error=access_denied")


def test_data_api_queries_configured_table() -> None:
    client = MagicMock()
    table = client.table.return_value
    table.select.return_value.execute.return_value = SimpleNamespace(data=[{"id": "1", "name": "a"}])
    table.insert.return_value.execute.return_value = SimpleNamespace(data=[{"id": "2", "name": "b", "owner": "u"}])
    api = sb.SupabaseDataApi(client, table="NoteData")

    assert api.list_notes() == [{"id": "1", "name": "a"}]
    assert api.create_note({"id": "2", "name": "b"}) == {"id": "2", "name": "b", "owner": "u"}
    api.delete_note("2")

    client.table.assert_called_with("NoteData")
    table.delete.return_value.eq.assert_called_once_with("id", "2")


def test_storage_paths_follow_access_level() -> None:
    client = MagicMock()
    client.auth.get_session.return_value = _signed_in_session("u1")
    storage = sb.SupabaseStorage(client, bucket="images")

    assert storage.object_path("k", AccessLevel.GUEST) == "public/k"
    assert storage.object_path("k", AccessLevel.PROTECTED) == "protected/u1/k"
    assert storage.object_path("k", AccessLevel.PRIVATE) == "private/u1/k"

    client.auth.get_session.return_value = None
    with pytest.raises(PermissionError):
        storage.object_path("k", AccessLevel.PRIVATE)


def test_storage_round_trip_calls_bucket() -> None:
    client = MagicMock()
    client.auth.get_session.return_value = _signed_in_session("u1")
    bucket = client.storage.from_.return_value
    bucket.download.return_value = b"png"
    storage = sb.SupabaseStorage(client, bucket="images")

    storage.upload("photo.png", b"png", AccessLevel.PRIVATE)
    assert storage.download("photo.png", AccessLevel.PRIVATE) == b"png"
    storage.remove("photo.png", AccessLevel.PRIVATE)

    client.storage.from_.assert_called_with("images")
    upload_kwargs = bucket.upload.call_args.kwargs
    assert upload_kwargs["path"] == "private/u1/photo.png"
    assert upload_kwargs["file_options"]["content-type"] == "image/png"
    bucket.remove.assert_called_once_with(["private/u1/photo.png"])


def test_create_backend_requires_credentials(tmp_path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.delenv("CLOUD_NOTES_SUPABASE_URL", raising=False)
    monkeypatch.delenv("CLOUD_NOTES_SUPABASE_KEY", raising=False)
    settings = SettingsManager(str(tmp_path / "settings.json"))

    with pytest.raises(ConfigurationError):
        sb.create_backend(settings)


def test_create_backend_wraps_client_errors(tmp_path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("CLOUD_NOTES_SUPABASE_URL", "https://project.supabase.test")
    monkeypatch.setenv("CLOUD_NOTES_SUPABASE_KEY", "anon-key")

    def _fail(*_args, **_kwargs):  # noqa: ANN002, ANN003
        raise RuntimeError("Invalid API key")

    monkeypatch.setattr(sb, "create_client", _fail)

    with pytest.raises(ConfigurationError) as exc:
        sb.create_backend(SettingsManager(str(tmp_path / "settings.json")))
    assert "Invalid API key" in str(exc.value)


def test_create_backend_wires_settings(tmp_path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("CLOUD_NOTES_SUPABASE_URL", "https://project.supabase.test")
    monkeypatch.setenv("CLOUD_NOTES_SUPABASE_KEY", "anon-key")
    fake_client = MagicMock()
    calls: list[tuple] = []

    def _create(url, key, options=None):  # noqa: ANN001
        calls.append((url, key, options))
        return fake_client

    monkeypatch.setattr(sb, "create_client", _create)
    settings = SettingsManager(str(tmp_path / "settings.json"))
    settings.set("notes_table", "Notes")

    backend = sb.create_backend(settings)

    assert calls[0][:2] == ("https://project.supabase.test", "anon-key")
    backend.api.list_notes()
    fake_client.table.assert_called_with("Notes")
    assert isinstance(calls[0][2].storage, FileAuthStorage)
    assert calls[0][2].storage.path == str(tmp_path / "auth_session.json")
