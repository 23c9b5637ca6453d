from __future__ import annotations

from PySide6.QtCore import QAbstractListModel, QModelIndex, Qt

from cloud_notes.models import Note


class NotesListModel(QAbstractListModel):
    """QML-friendly notes list.

    Image bytes are not exposed to QML; `imageUrl` points at the note image
    provider (image://note/<gen>/<id>) and is empty until bytes arrive.
    """

    class Roles:
        Id = Qt.ItemDataRole.UserRole + 1
        Name = Qt.ItemDataRole.UserRole + 2
        Description = Qt.ItemDataRole.UserRole + 3
        ImageName = Qt.ItemDataRole.UserRole + 4
        HasImage = Qt.ItemDataRole.UserRole + 5
        ImageUrl = Qt.ItemDataRole.UserRole + 6

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self._notes: list[Note] = []
        self._image_gen: dict[str, int] = {}
        self._role_getters = {
            int(self.Roles.Id): lambda n: n.id,
            int(self.Roles.Name): lambda n: n.name,
            int(self.Roles.Description): lambda n: n.description,
            int(self.Roles.ImageName): lambda n: n.image_name or "",
            int(self.Roles.HasImage): lambda n: n.image is not None,
            # Include the generation to force QML Image to refresh when bytes arrive.
            int(self.Roles.ImageUrl): lambda n: (
                f"image://note/{self._image_gen.get(n.id, 0)}/{n.id}" if n.image is not None else ""
            ),
        }

    # ---- Qt model basics -----------------------------------------
    def rowCount(self, parent: QModelIndex | None = None) -> int:  # type: ignore[override]
        if parent is not None and parent.isValid():
            return 0
        return len(self._notes)

    def roleNames(self) -> dict[int, bytes]:  # type: ignore[override]
        return {
            int(self.Roles.Id): b"noteId",
            int(self.Roles.Name): b"name",
            int(self.Roles.Description): b"description",
            int(self.Roles.ImageName): b"imageName",
            int(self.Roles.HasImage): b"hasImage",
            int(self.Roles.ImageUrl): b"imageUrl",
        }

    def data(self, index: QModelIndex, role: int):  # type: ignore[override]
        if not index.isValid():
            return None

        row = int(index.row())
        if not (0 <= row < len(self._notes)):
            return None

        getter = self._role_getters.get(int(role))
        if getter is None:
            return None
        return getter(self._notes[row])

    # ---- mutations (driven by UserDataState) ---------------------
    def notes(self) -> list[Note]:
        return list(self._notes)

    def append(self, note: Note) -> None:
        row = len(self._notes)
        self.beginInsertRows(QModelIndex(), row, row)
        self._notes.append(note)
        self.endInsertRows()

    def remove(self, note_id: str) -> Note | None:
        for row, note in enumerate(self._notes):
            if note.id == note_id:
                self.beginRemoveRows(QModelIndex(), row, row)
                del self._notes[row]
                self.endRemoveRows()
                self._image_gen.pop(note_id, None)
                return note
        return None

    def clear(self) -> None:
        if not self._notes:
            return
        self.beginResetModel()
        self._notes = []
        self._image_gen.clear()
        self.endResetModel()

    def find(self, note_id: str) -> Note | None:
        for note in self._notes:
            if note.id == note_id:
                return note
        return None

    def set_image(self, note_id: str, data: bytes) -> bool:
        for row, note in enumerate(self._notes):
            if note.id != note_id:
                continue
            note.image = bytes(data)
            self._image_gen[note_id] = self._image_gen.get(note_id, 0) + 1
            qidx = self.index(row, 0)
            self.dataChanged.emit(qidx, qidx, [int(self.Roles.HasImage), int(self.Roles.ImageUrl)])
            return True
        return False
