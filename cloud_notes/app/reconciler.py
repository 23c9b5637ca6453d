"""Sign-in status reconciliation.

Two sources report sign-in status: the one-shot session fetch at startup and
the live auth event stream. Neither is ordered against the other, so every
reported value is applied as it arrives and the last one wins.
"""
from __future__ import annotations

from dataclasses import dataclass, replace

from PySide6.QtCore import QObject, Signal, Slot

from cloud_notes.app.state.user_data import UserDataState
from cloud_notes.logger import get_logger
from cloud_notes.models import AuthEvent, AuthSession, SignInStatus

_logger = get_logger("reconciler")

_STATUS_BY_EVENT: dict[AuthEvent, bool] = {
    AuthEvent.SIGNED_IN: True,
    AuthEvent.SIGNED_OUT: False,
    AuthEvent.SESSION_EXPIRED: False,
}


def status_for_event(event: AuthEvent) -> bool | None:
    """Sign-in status carried by an auth event, or None when it carries none."""
    return _STATUS_BY_EVENT.get(event)


@dataclass(frozen=True)
class SessionState:
    status: SignInStatus = SignInStatus.UNKNOWN
    has_notes: bool = False
    listing: bool = False


@dataclass(frozen=True)
class Transition:
    state: SessionState
    load_notes: bool = False
    clear_notes: bool = False


def reduce_status(state: SessionState, signed_in: bool) -> Transition:
    if not signed_in:
        return Transition(
            state=SessionState(status=SignInStatus.SIGNED_OUT),
            clear_notes=True,
        )

    load = not state.has_notes and not state.listing
    return Transition(
        state=replace(state, status=SignInStatus.SIGNED_IN, listing=state.listing or load),
        load_notes=load,
    )


class SessionReconciler(QObject):
    """Applies reduced sign-in transitions to UserDataState on its own thread."""

    loadNotesRequested = Signal()
    signedOut = Signal()
    statusApplied = Signal(bool)

    _statusPosted = Signal(bool)

    def __init__(self, user_data: UserDataState, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._user_data = user_data
        self._listing = False
        # Same-thread emits run directly; emits from other threads are queued here.
        self._statusPosted.connect(self._apply_status)

    @property
    def listing(self) -> bool:
        return self._listing

    def _state(self) -> SessionState:
        return SessionState(
            status=self._user_data.status,
            has_notes=self._user_data.has_notes(),
            listing=self._listing,
        )

    # ---- inputs ----
    def on_session_fetched(self, session: AuthSession) -> None:
        _logger.debug("session fetched: signed_in=%s", session.is_signed_in)
        self.apply_status(bool(session.is_signed_in))

    def on_auth_event(self, event: AuthEvent) -> None:
        status = status_for_event(event)
        if status is None:
            _logger.debug("auth event ignored: %s", event.value)
            return
        _logger.info("auth event %s, signed_in=%s", event.value, status)
        self.apply_status(status)

    def apply_status(self, signed_in: bool) -> None:
        self._statusPosted.emit(bool(signed_in))

    def notes_request_started(self) -> None:
        self._listing = True

    def notes_request_settled(self) -> None:
        self._listing = False

    # ---- main-thread update ----
    @Slot(bool)
    def _apply_status(self, signed_in: bool) -> None:
        transition = reduce_status(self._state(), signed_in)
        self._listing = transition.state.listing

        self._user_data._set_signed_in(transition.state.status is SignInStatus.SIGNED_IN)
        if transition.clear_notes:
            self._user_data._clear_notes()
            self.signedOut.emit()
        self.statusApplied.emit(bool(signed_in))

        if transition.load_notes:
            self.loadNotesRequested.emit()
