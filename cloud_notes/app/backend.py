from __future__ import annotations

import contextlib
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from PySide6.QtCore import Property, QObject, Qt, QUrl, Signal, Slot
from PySide6.QtGui import QDesktopServices, QPixmap
from PySide6.QtQuick import QQuickImageProvider

from cloud_notes.app.reconciler import SessionReconciler
from cloud_notes.app.requests import RequestHandle, RequestRunner
from cloud_notes.app.state.user_data import UserDataState
from cloud_notes.errors import ConfigurationError, StreamTerminated
from cloud_notes.logger import get_logger
from cloud_notes.models import AccessLevel, AuthEvent, Note, SignInResult
from cloud_notes.service.backend_iface import AuthSubscription, BackendClient
from cloud_notes.service.supabase_backend import create_backend
from cloud_notes.settings_manager import SettingsManager

_logger = get_logger("backend")
_BASE_DIR = Path(getattr(sys, "_MEIPASS", Path(__file__).resolve().parents[1]))
_GEN_ID_SPLIT_MAX = 1
_GEN_ID_PARTS = 2


def _open_in_browser(url: str) -> None:
    if not QDesktopServices.openUrl(QUrl(url)):
        _logger.warning("could not open sign-in page: %s", url)


class NoteImageProvider(QQuickImageProvider):
    """QML image provider for downloaded note images (image://note/<gen>/<note id>)."""

    def __init__(self, user_data: UserDataState) -> None:
        super().__init__(QQuickImageProvider.ImageType.Pixmap)
        self._user_data = user_data

    def requestPixmap(self, id: str, size: Any, requestedSize: Any) -> QPixmap:
        parts = str(id).split("/", _GEN_ID_SPLIT_MAX)
        note_id = parts[1] if len(parts) == _GEN_ID_PARTS and parts[0].isdigit() else str(id)

        note = self._user_data.find_note(note_id)
        if note is not None and note.image:
            pix = QPixmap()
            if pix.loadFromData(note.image):
                return pix
            _logger.debug("note image is not decodable: %s", note_id)

        placeholder = QPixmap(1, 1)
        placeholder.fill(Qt.GlobalColor.transparent)
        return placeholder


class BackendFacade(QObject):
    """Single backend object exposed to QML.

    Owns the backend client, the startup session fetch and the auth event
    subscription, and offers fire-and-forget note and image operations.

    QML → Python: backend.dispatch(cmd, payload)
    Python → QML: backend.event(dict)
    QML bindings: backend.userData
    """

    # QObject already has an .event() handler method, so we must not shadow it.
    event_ = Signal(object, name="event")

    _authEventReceived = Signal(object)
    _authStreamFailed = Signal(object)

    def __init__(
        self,
        client: BackendClient | None = None,
        settings: SettingsManager | None = None,
        runner: RequestRunner | None = None,
        presenter: Callable[[str], None] | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)

        self._settings_mgr = settings or SettingsManager(str(_BASE_DIR / "settings.json"))
        self._user_data = UserDataState(self)
        self._reconciler = SessionReconciler(self._user_data, self)
        self._runner = runner or RequestRunner(max_workers=self._settings_mgr.request_workers, parent=self)
        self._presenter = presenter or _open_in_browser
        self.note_image_provider = NoteImageProvider(self._user_data)

        self._client = client if client is not None else self._init_backend()

        # These must stay around for as long as the app runs.
        self._session_handle: RequestHandle | None = None
        self._auth_subscription: AuthSubscription | None = None
        self._query_handle: RequestHandle | None = None
        self._image_handles: dict[str, RequestHandle] = {}

        self._setup_signals()

    def _init_backend(self) -> BackendClient | None:
        try:
            client = create_backend(self._settings_mgr)
        except ConfigurationError as e:
            _logger.error("Could not initialize backend: %s", e)
            return None
        _logger.info("Initialized backend")
        return client

    def _setup_signals(self) -> None:
        self._authEventReceived.connect(self._on_auth_event)
        self._authStreamFailed.connect(self._on_auth_stream_failed)
        self._reconciler.loadNotesRequested.connect(self._on_load_notes_requested)
        self._reconciler.signedOut.connect(self._on_signed_out)

    # ---- expose state objects to QML ----
    def _get_user_data(self) -> QObject:
        return self._user_data

    userData = Property(QObject, _get_user_data, constant=True)  # type: ignore[arg-type]

    def _get_backend_ready(self) -> bool:
        return self._client is not None

    backendReady = Property(bool, _get_backend_ready, constant=True)  # type: ignore[arg-type]

    @property
    def user_data(self) -> UserDataState:
        return self._user_data

    @property
    def reconciler(self) -> SessionReconciler:
        return self._reconciler

    # ---- session sync ----
    def start(self) -> None:
        """Fetch the current session and subscribe to auth events."""
        if self._client is None:
            _logger.warning("backend not configured; session sync disabled")
            return
        if self._session_handle is not None or self._auth_subscription is not None:
            return

        auth = self._client.auth
        self._session_handle = self._runner.submit(
            "fetch auth session",
            auth.fetch_session,
            on_success=self._reconciler.on_session_fetched,
        )
        try:
            self._auth_subscription = auth.subscribe(self._authEventReceived.emit, self._authStreamFailed.emit)
        except Exception as e:
            _logger.error("%s", StreamTerminated(f"could not subscribe to auth events: {e}"))

    @Slot(object)
    def _on_auth_event(self, event: AuthEvent) -> None:
        self._reconciler.on_auth_event(event)

    @Slot(object)
    def _on_auth_stream_failed(self, error: object) -> None:
        # TODO: resubscribe with backoff; until then live auth updates stop here.
        _logger.error("%s", StreamTerminated(f"auth event stream ended: {error}"))
        self._auth_subscription = None

    def _on_load_notes_requested(self) -> None:
        self._track_query(self.list_notes())

    def _track_query(self, handle: RequestHandle) -> None:
        # Inline runners may already have delivered the outcome.
        self._query_handle = None if handle.finished else handle

    def _on_signed_out(self) -> None:
        if self._query_handle is not None:
            self._query_handle.cancel()
            self._query_handle = None
        self._reconciler.notes_request_settled()
        self._cancel_image_downloads()

    def _cancel_image_downloads(self) -> None:
        for handle in self._image_handles.values():
            handle.cancel()
        self._image_handles.clear()

    # ---- request plumbing ----
    def _backend_for(self, name: str) -> BackendClient | None:
        if self._client is None:
            _logger.error("%s skipped: backend not configured", name)
        return self._client

    @staticmethod
    def _finished_handle(name: str) -> RequestHandle:
        handle = RequestHandle(name)
        handle._finish()
        return handle

    # ---- authentication ----
    def sign_in(self, email: str | None = None, password: str | None = None) -> RequestHandle:
        client = self._backend_for("sign in")
        if client is None:
            return self._finished_handle("sign in")
        return self._runner.submit("sign in", client.auth.sign_in, email, password, on_success=self._on_sign_in_result)

    def _on_sign_in_result(self, result: SignInResult) -> None:
        _logger.info("Sign in succeeded: %s", result)
        if result.url:
            self._presenter(result.url)

    def complete_sign_in(self, callback_url: str) -> RequestHandle:
        client = self._backend_for("complete sign in")
        if client is None:
            return self._finished_handle("complete sign in")
        return self._runner.submit(
            "complete sign in",
            client.auth.complete_sign_in,
            str(callback_url),
            on_success=lambda session: _logger.info("Sign in completed for %s", session.email or session.user_id),
        )

    def sign_out(self) -> RequestHandle:
        client = self._backend_for("sign out")
        if client is None:
            return self._finished_handle("sign out")
        return self._runner.submit(
            "sign out",
            client.auth.sign_out,
            on_success=lambda _result: _logger.info("Successfully signed out"),
        )

    # ---- API access ----
    def list_notes(self) -> RequestHandle:
        client = self._backend_for("list notes")
        if client is None:
            self._reconciler.notes_request_settled()
            return self._finished_handle("list notes")
        return self._runner.submit(
            "list notes",
            client.api.list_notes,
            on_success=self._on_notes_listed,
            on_failure=self._on_notes_list_failed,
        )

    def _on_notes_list_failed(self, _failure: object) -> None:
        self._reconciler.notes_request_settled()
        self._query_handle = None

    def _on_notes_listed(self, records: list[dict]) -> None:
        self._reconciler.notes_request_settled()
        self._query_handle = None
        if not self._user_data.isSignedIn:
            _logger.info("Dropping %d notes received while signed out", len(records))
            return

        _logger.info("Successfully retrieved list of Notes")
        for record in records:
            note = Note.from_record(record)
            self._user_data._append_note(note)
            if note.image_name:
                self._fetch_note_image(note)

    def refresh_notes(self) -> RequestHandle | None:
        if not self._user_data.isSignedIn:
            _logger.info("refresh ignored: not signed in")
            return None
        if self._query_handle is not None:
            self._query_handle.cancel()
        self._cancel_image_downloads()
        self._user_data._clear_notes()
        self._reconciler.notes_request_started()
        handle = self.list_notes()
        self._track_query(handle)
        return handle

    def create_note(self, note: Note) -> RequestHandle:
        client = self._backend_for("create note")
        if client is None:
            return self._finished_handle("create note")
        return self._runner.submit(
            "create note",
            client.api.create_note,
            note.to_record(),
            on_success=lambda record, n=note: self._on_note_created(n, record),
        )

    def _on_note_created(self, note: Note, record: Any) -> None:
        _logger.info("Successfully created note: %s", record)
        if isinstance(record, dict):
            note.data = dict(record)
        if self._user_data.find_note(note.id) is None:
            self._user_data._append_note(note)

    def delete_note(self, note: Note) -> RequestHandle:
        client = self._backend_for("delete note")
        if client is None:
            return self._finished_handle("delete note")
        return self._runner.submit(
            "delete note",
            client.api.delete_note,
            note.id,
            on_success=lambda record, n=note: self._on_note_deleted(n, record),
        )

    def _on_note_deleted(self, note: Note, record: Any) -> None:
        _logger.info("Successfully deleted note: %s", record)
        self._user_data._remove_note(note.id)

    def add_note(self, name: str, description: str = "", image: bytes | None = None) -> list[RequestHandle]:
        """Create a note, uploading its image first when one is given (key = note id)."""
        note = Note.create(name, description)
        handles: list[RequestHandle] = []
        if image:
            note.image_name = note.id
            note.image = bytes(image)
            note.data = note.to_record()
            handles.append(self.store_image(note.image_name, note.image))
        handles.append(self.create_note(note))
        return handles

    def remove_note(self, note: Note) -> list[RequestHandle]:
        handles = [self.delete_note(note)]
        if note.image_name:
            handles.append(self.delete_image(note.image_name))
        return handles

    # ---- image access ----
    def store_image(self, name: str, image: bytes) -> RequestHandle:
        client = self._backend_for("upload image")
        if client is None:
            return self._finished_handle("upload image")
        return self._runner.submit(
            "upload image",
            client.storage.upload,
            name,
            bytes(image),
            AccessLevel.PRIVATE,
            on_success=lambda result: _logger.info("Image %s uploaded: %s", name, result),
        )

    def retrieve_image(self, name: str, completed: Callable[[bytes], None]) -> RequestHandle:
        client = self._backend_for("download image")
        if client is None:
            return self._finished_handle("download image")

        def _on_downloaded(data: bytes) -> None:
            _logger.info("Image %s loaded", name)
            completed(data)

        return self._runner.submit(
            "download image",
            client.storage.download,
            name,
            AccessLevel.PRIVATE,
            on_success=_on_downloaded,
        )

    def delete_image(self, name: str) -> RequestHandle:
        client = self._backend_for("delete image")
        if client is None:
            return self._finished_handle("delete image")
        return self._runner.submit(
            "delete image",
            client.storage.remove,
            name,
            AccessLevel.PRIVATE,
            on_success=lambda _result: _logger.info("Image %s deleted", name),
        )

    def _fetch_note_image(self, note: Note) -> None:
        note_id = note.id

        def _store(data: bytes) -> None:
            # A newer download for the same note may be tracked by now; keep it.
            current = self._image_handles.get(note_id)
            if current is not None and current.finished:
                del self._image_handles[note_id]
            self._user_data._set_note_image(note_id, data)

        handle = self.retrieve_image(str(note.image_name), _store)
        if not handle.finished:
            self._image_handles[note_id] = handle

    # ---- QML command entry ----
    @Slot(str, "QVariant")  # type: ignore[call-overload]
    def dispatch(self, cmd: str, payload: object | None = None) -> None:  # noqa: PLR0911
        command = str(cmd or "").strip()
        if not command:
            self.event_.emit({"type": "event", "name": "error", "level": "error", "message": "Empty cmd"})
            return

        if command == "log":
            self._handle_log_cmd(payload)
            return

        if command == "signIn":
            email = _get_payload_value(payload, "email", default=None)
            password = _get_payload_value(payload, "password", default=None)
            self.sign_in(str(email) if email else None, str(password) if password else None)
            return

        if command == "completeSignIn":
            self.complete_sign_in(str(_get_payload_value(payload, "url", default=payload) or ""))
            return

        if command == "signOut":
            self.sign_out()
            return

        if command == "refreshNotes":
            self.refresh_notes()
            return

        if command == "createNote":
            self._cmd_create_note(payload)
            return

        if command == "deleteNote":
            self._cmd_delete_note(payload)
            return

        self.event_.emit(
            {
                "type": "event",
                "name": "error",
                "level": "warning",
                "message": f"Unknown cmd: {command}",
            }
        )

    # ---- cmd handlers ----
    def _handle_log_cmd(self, payload: object | None) -> None:
        level = str(_get_payload_value(payload, "level", default="debug")).lower()
        msg = str(_get_payload_value(payload, "message", default=""))
        if not msg:
            return

        if level == "info":
            _logger.info("[QML] %s", msg)
        elif level in {"warn", "warning"}:
            _logger.warning("[QML] %s", msg)
        elif level == "error":
            _logger.error("[QML] %s", msg)
        else:
            _logger.debug("[QML] %s", msg)

    def _cmd_create_note(self, payload: object | None) -> None:
        name = str(_get_payload_value(payload, "name", default="") or "").strip()
        if not name:
            self.event_.emit({"type": "event", "name": "toast", "level": "error", "message": "A note needs a name"})
            return
        description = str(_get_payload_value(payload, "description", default="") or "")

        image: bytes | None = None
        raw_path = str(_get_payload_value(payload, "imagePath", default="") or "")
        if raw_path:
            if raw_path.startswith("file:"):
                url = QUrl(raw_path)
                if url.isLocalFile():
                    raw_path = url.toLocalFile()
            try:
                image = Path(raw_path).read_bytes()
            except OSError as e:
                _logger.warning("could not read image %s: %s", raw_path, e)
                self.event_.emit({"type": "event", "name": "toast", "level": "error", "message": f"Cannot read {raw_path}"})
                return

        self.add_note(name, description, image)

    def _cmd_delete_note(self, payload: object | None) -> None:
        note_id = str(_get_payload_value(payload, "id", default=payload) or "")
        note = self._user_data.find_note(note_id)
        if note is None:
            self.event_.emit({"type": "event", "name": "error", "level": "warning", "message": f"Unknown note: {note_id}"})
            return
        self.remove_note(note)

    # ---- lifetime ----
    def shutdown(self) -> None:
        sub, self._auth_subscription = self._auth_subscription, None
        if sub is not None:
            with contextlib.suppress(Exception):
                sub.unsubscribe()
        for handle in (self._session_handle, self._query_handle):
            if handle is not None:
                handle.cancel()
        self._cancel_image_downloads()
        self._runner.shutdown()
        _logger.debug("backend facade shut down")


def _get_payload_value(payload: object | None, key: str, *, default: Any) -> Any:
    """Extract a value from a QML payload (dict-like, QJSValue or None)."""

    if payload is None:
        return default

    # QML often passes a JS object which arrives as QJSValue/QVariant.
    if payload.__class__.__name__ == "QJSValue" and hasattr(payload, "toVariant"):
        with contextlib.suppress(Exception):
            payload = payload.toVariant()  # type: ignore[assignment, attr-defined]

    if isinstance(payload, dict):
        return payload.get(key, default)

    return default
