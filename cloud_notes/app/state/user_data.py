from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal

from cloud_notes.models import Note, SignInStatus
from cloud_notes.qml_models import NotesListModel


class UserDataState(QObject):
    """Signed-in flag and notes bound by the UI.

    Mutated only from the main thread, through the facade and the session
    reconciler. Notes are kept only while signed in.
    """

    isSignedInChanged = Signal(bool)
    signInStatusChanged = Signal(str)
    notesChanged = Signal()
    noteImageChanged = Signal(str)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._status = SignInStatus.UNKNOWN
        self._notes = NotesListModel(self)

    # ---- read-only properties (mutate via backend) ----
    def _get_is_signed_in(self) -> bool:
        return self._status is SignInStatus.SIGNED_IN

    isSignedIn = Property(bool, _get_is_signed_in, notify=isSignedInChanged)  # type: ignore[arg-type]

    def _get_sign_in_status(self) -> str:
        return self._status.value

    signInStatus = Property(str, _get_sign_in_status, notify=signInStatusChanged)  # type: ignore[arg-type]

    def _get_notes_model(self) -> QObject:
        return self._notes

    notes = Property(QObject, _get_notes_model, constant=True)  # type: ignore[arg-type]

    def _get_note_count(self) -> int:
        return self._notes.rowCount()

    noteCount = Property(int, _get_note_count, notify=notesChanged)  # type: ignore[arg-type]

    # ---- python accessors ----
    @property
    def status(self) -> SignInStatus:
        return self._status

    def notes_list(self) -> list[Note]:
        return self._notes.notes()

    def has_notes(self) -> bool:
        return self._notes.rowCount() > 0

    def find_note(self, note_id: str) -> Note | None:
        return self._notes.find(note_id)

    # ---- internal mutation helpers (called by backend) ----
    def _set_signed_in(self, value: bool) -> None:
        status = SignInStatus.from_bool(bool(value))
        if status is self._status:
            return
        was_signed_in = self._get_is_signed_in()
        self._status = status
        self.signInStatusChanged.emit(status.value)
        if was_signed_in != self._get_is_signed_in():
            self.isSignedInChanged.emit(self._get_is_signed_in())

    def _append_note(self, note: Note) -> bool:
        if not self._get_is_signed_in():
            return False
        self._notes.append(note)
        self.notesChanged.emit()
        return True

    def _remove_note(self, note_id: str) -> Note | None:
        note = self._notes.remove(str(note_id))
        if note is not None:
            self.notesChanged.emit()
        return note

    def _clear_notes(self) -> None:
        if not self._notes.rowCount():
            return
        self._notes.clear()
        self.notesChanged.emit()

    def _set_note_image(self, note_id: str, data: bytes) -> None:
        if self._notes.set_image(str(note_id), data):
            self.noteImageChanged.emit(str(note_id))
