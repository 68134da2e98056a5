"""
Contracts for the services the performance core consumes but does not own.

Persistence of notes and highlights, and user sessions, belong to other
parts of Mind Vault.  The core only needs the small surface described by
the protocols below.  ``InMemoryNoteStore`` and ``StaticSessionProvider``
are lightweight implementations for tests and the terminal view.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Protocol


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Records ─────────────────────────────────────────────────────────

@dataclass
class Highlight:
    highlight_id: str
    ebook_id: str
    text: str
    start_position: int = 0
    end_position: int = 0
    highlight_type: str = "important"   # important | question | insight | custom
    color: str = "#ffeb3b"
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "highlight_id": self.highlight_id,
            "ebook_id": self.ebook_id,
            "text": self.text,
            "start_position": self.start_position,
            "end_position": self.end_position,
            "highlight_type": self.highlight_type,
            "color": self.color,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Note:
    note_id: str
    ebook_id: str
    content: str
    highlight_id: str | None = None
    chapter: str | None = None
    topic: str | None = None
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "note_id": self.note_id,
            "ebook_id": self.ebook_id,
            "highlight_id": self.highlight_id,
            "content": self.content,
            "chapter": self.chapter,
            "topic": self.topic,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# ── Protocols ───────────────────────────────────────────────────────

class NoteStore(Protocol):
    def create_note(self, ebook_id: str, content: str, **fields: Any) -> Note: ...
    def get_note(self, note_id: str) -> Note | None: ...
    def update_note(self, note_id: str, **fields: Any) -> Note | None: ...
    def delete_note(self, note_id: str) -> bool: ...
    def get_notes_by_ebook(self, ebook_id: str) -> list[Note]: ...
    def get_notes_by_highlight(self, highlight_id: str) -> list[Note]: ...
    def create_highlight(self, ebook_id: str, text: str, **fields: Any) -> Highlight: ...
    def get_highlight(self, highlight_id: str) -> Highlight | None: ...
    def delete_highlight(self, highlight_id: str) -> bool: ...
    def get_highlights_by_ebook(self, ebook_id: str) -> list[Highlight]: ...


class SessionProvider(Protocol):
    def current_user(self) -> str | None:
        """The signed-in user's id, or None when not authenticated."""
        ...


# ── Reference implementations ───────────────────────────────────────

class InMemoryNoteStore:
    """Dict-backed NoteStore. Deleting a highlight deletes its notes."""

    def __init__(self):
        self._notes: dict[str, Note] = {}
        self._highlights: dict[str, Highlight] = {}

    def create_note(self, ebook_id: str, content: str, **fields: Any) -> Note:
        note = Note(note_id=uuid.uuid4().hex, ebook_id=ebook_id, content=content, **fields)
        self._notes[note.note_id] = note
        return note

    def get_note(self, note_id: str) -> Note | None:
        return self._notes.get(note_id)

    def update_note(self, note_id: str, **fields: Any) -> Note | None:
        note = self._notes.get(note_id)
        if note is None:
            return None
        updated = replace(note, **fields, updated_at=_now_iso())
        self._notes[note_id] = updated
        return updated

    def delete_note(self, note_id: str) -> bool:
        return self._notes.pop(note_id, None) is not None

    def get_notes_by_ebook(self, ebook_id: str) -> list[Note]:
        return [n for n in self._notes.values() if n.ebook_id == ebook_id]

    def get_notes_by_highlight(self, highlight_id: str) -> list[Note]:
        return [n for n in self._notes.values() if n.highlight_id == highlight_id]

    def create_highlight(self, ebook_id: str, text: str, **fields: Any) -> Highlight:
        highlight = Highlight(highlight_id=uuid.uuid4().hex, ebook_id=ebook_id, text=text, **fields)
        self._highlights[highlight.highlight_id] = highlight
        return highlight

    def get_highlight(self, highlight_id: str) -> Highlight | None:
        return self._highlights.get(highlight_id)

    def delete_highlight(self, highlight_id: str) -> bool:
        if self._highlights.pop(highlight_id, None) is None:
            return False
        for note in self.get_notes_by_highlight(highlight_id):
            del self._notes[note.note_id]
        return True

    def get_highlights_by_ebook(self, ebook_id: str) -> list[Highlight]:
        return [h for h in self._highlights.values() if h.ebook_id == ebook_id]


class StaticSessionProvider:
    """Always reports the same user (or no user)."""

    def __init__(self, user_id: str | None = None):
        self.user_id = user_id

    def current_user(self) -> str | None:
        return self.user_id
