"""Pytest configuration.

The facade and state objects are QObjects, and image providers need a GUI
application object. We create a single `QApplication` for the entire session
as early as possible and cleanly shut it down at the end.

Backend fakes live here as well: they implement the capability interfaces in
memory and let tests push auth events and hold requests open.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Executor, Future
from typing import Any

import pytest

from cloud_notes.models import AccessLevel, AuthEvent, AuthSession, SignInResult
from cloud_notes.service.backend_iface import (
    AuthCategory,
    AuthSubscription,
    BackendClient,
    DataApiCategory,
    StorageCategory,
)

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QApplication exists before collecting/running tests."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    # Headless runs (CI, containers) have no display server.
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

    global _APP

    app = QApplication.instance()
    if app is None:
        # Keep a strong ref so it isn't GC'd mid-session.
        _APP = QApplication([])
    else:
        _APP = app


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Attempt a clean Qt shutdown to avoid lingering threads at interpreter exit."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    app = QApplication.instance()
    if app is None:
        return

    app.quit()
    app.processEvents()


# ---- executors ---------------------------------------------------------------


class InlineExecutor(Executor):
    """Runs submitted calls immediately on the calling thread."""

    def __init__(self) -> None:
        self.submitted: list[str] = []

    def submit(self, fn, /, *args, **kwargs):  # noqa: ANN001
        self.submitted.append(getattr(fn, "__name__", repr(fn)))
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


# ---- backend fakes -------------------------------------------------------------

_WAIT_SECONDS = 5.0


class FakeSubscription(AuthSubscription):
    def __init__(self) -> None:
        self.unsubscribed = False

    def unsubscribe(self) -> None:
        self.unsubscribed = True


class FakeAuth(AuthCategory):
    def __init__(self) -> None:
        self.session = AuthSession(is_signed_in=False)
        self.fetch_error: Exception | None = None
        self.sign_in_result = SignInResult(url="https://auth.example.test/authorize")
        self.sign_in_calls: list[tuple[str | None, str | None]] = []
        self.completed_urls: list[str] = []
        self.sign_out_calls = 0
        self.subscription: FakeSubscription | None = None
        self._on_event = None
        self._on_error = None

    def fetch_session(self) -> AuthSession:
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.session

    def subscribe(self, on_event, on_error) -> AuthSubscription:  # noqa: ANN001
        self._on_event = on_event
        self._on_error = on_error
        self.subscription = FakeSubscription()
        return self.subscription

    def emit(self, event: AuthEvent) -> None:
        assert self._on_event is not None, "nobody subscribed"
        self._on_event(event)

    def fail_stream(self, error: BaseException) -> None:
        assert self._on_error is not None, "nobody subscribed"
        self._on_error(error)

    def sign_in(self, email: str | None = None, password: str | None = None) -> SignInResult:
        self.sign_in_calls.append((email, password))
        return self.sign_in_result

    def complete_sign_in(self, callback_url: str) -> AuthSession:
        self.completed_urls.append(callback_url)
        return AuthSession(is_signed_in=True, user_id="user-1", email="user@example.test")

    def sign_out(self) -> None:
        self.sign_out_calls += 1


class FakeDataApi(DataApiCategory):
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []
        self.list_calls = 0
        self.list_gate: threading.Event | None = None
        self.list_error: Exception | None = None
        self.create_error: Exception | None = None
        self.created: list[dict[str, Any]] = []
        self.deleted: list[str] = []

    def list_notes(self) -> list[dict[str, Any]]:
        self.list_calls += 1
        if self.list_gate is not None:
            self.list_gate.wait(_WAIT_SECONDS)
        if self.list_error is not None:
            raise self.list_error
        return [dict(r) for r in self.records]

    def create_note(self, record: dict[str, Any]) -> dict[str, Any]:
        if self.create_error is not None:
            raise self.create_error
        created = {**record, "createdAt": "2024-01-01T00:00:00Z"}
        self.created.append(created)
        return created

    def delete_note(self, note_id: str) -> Any:
        self.deleted.append(note_id)
        return [{"id": note_id}]


class FakeStorage(StorageCategory):
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.download_started = threading.Event()
        self.download_gate: threading.Event | None = None
        self.removed: list[str] = []

    def upload(self, key: str, data: bytes, access_level: AccessLevel) -> Any:
        self.objects[f"{access_level.value}/{key}"] = bytes(data)
        return {"key": key}

    def download(self, key: str, access_level: AccessLevel) -> bytes:
        self.download_started.set()
        if self.download_gate is not None:
            self.download_gate.wait(_WAIT_SECONDS)
        try:
            return self.objects[f"{access_level.value}/{key}"]
        except KeyError:
            raise FileNotFoundError(key) from None

    def remove(self, key: str, access_level: AccessLevel) -> Any:
        self.removed.append(key)
        self.objects.pop(f"{access_level.value}/{key}", None)
        return [{"name": key}]


class FakeBackend:
    def __init__(self) -> None:
        self.auth = FakeAuth()
        self.api = FakeDataApi()
        self.storage = FakeStorage()

    def client(self) -> BackendClient:
        return BackendClient(auth=self.auth, api=self.api, storage=self.storage)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def captured_logs(caplog):
    """caplog wired to the project logger (which does not propagate to root)."""

    base = logging.getLogger("cloud_notes")
    base.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="cloud_notes")
    try:
        yield caplog
    finally:
        base.removeHandler(caplog.handler)


@pytest.fixture
def make_facade(tmp_path, monkeypatch):
    """Build a BackendFacade over a fake backend; inline requests unless threaded=True."""

    from cloud_notes.app.backend import BackendFacade
    from cloud_notes.app.requests import RequestRunner
    from cloud_notes.settings_manager import SettingsManager

    monkeypatch.delenv("CLOUD_NOTES_SUPABASE_URL", raising=False)
    monkeypatch.delenv("CLOUD_NOTES_SUPABASE_KEY", raising=False)
    created = []

    def _make(backend: FakeBackend | None = None, *, threaded: bool = False, presenter=None):  # noqa: ANN001
        runner = RequestRunner(max_workers=2) if threaded else RequestRunner(executor=InlineExecutor())
        facade = BackendFacade(
            client=backend.client() if backend is not None else None,
            settings=SettingsManager(str(tmp_path / "settings.json")),
            runner=runner,
            presenter=presenter or (lambda url: None),
        )
        created.append(facade)
        return facade

    yield _make

    for facade in created:
        facade.shutdown()


@pytest.fixture
def inline_runner():
    from cloud_notes.app.requests import RequestRunner

    runner = RequestRunner(executor=InlineExecutor())
    yield runner
    runner.shutdown()
