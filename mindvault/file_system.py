"""
File-system facade for the desktop reader: file operations, ebook
import and data export.

File operations are placeholders that return deterministic mock data;
nothing touches the disk.  ``copy_file`` is ``read_file`` + ``write_file``
and ``move_file`` is ``copy_file`` + ``delete_file``, so a real backend
only has to replace the primitives.

Usage:
    fs = FileSystemManager(note_store=store)
    result = await fs.import_ebook("/books/dune.epub")
    await fs.export_data(rows, "/tmp/rows.csv", "csv")
    fs.windows.create_window(WindowType.READING, "Dune")
"""

import csv
import io
import json
import logging
import mimetypes
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Callable

from mindvault.collaborators import NoteStore
from mindvault.windows import WindowManager

logger = logging.getLogger("mindvault.file_system")

SUPPORTED_FORMATS = (".epub", ".mobi", ".pdf", ".txt", ".md")
EXPORT_FORMATS = ("json", "csv", "txt", "md")

MOCK_FILE_CONTENT = b"Mock file content"
MOCK_FILE_SIZE = 1024000

_EBOOK_MIME_TYPES = {
    ".epub": "application/epub+zip",
    ".mobi": "application/x-mobipocket-ebook",
    ".md": "text/markdown",
}


class FileSystemError(OSError):
    """A file operation failed. The message names the operation and path."""


class UnsupportedFormatError(ValueError):
    """Export requested in a format other than json, csv, txt or md."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Dataclasses ─────────────────────────────────────────────────────

@dataclass
class FilePermissions:
    read: bool = True
    write: bool = True
    execute: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {"read": self.read, "write": self.write, "execute": self.execute}


@dataclass
class FileSystemEntry:
    name: str
    path: str
    entry_type: str                  # "file" | "directory"
    size: int
    modified: datetime = field(default_factory=_utcnow)
    created: datetime = field(default_factory=_utcnow)
    permissions: FilePermissions = field(default_factory=FilePermissions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.entry_type,
            "size": self.size,
            "modified": self.modified.isoformat(),
            "created": self.created.isoformat(),
            "permissions": self.permissions.to_dict(),
        }


@dataclass
class FileInfo(FileSystemEntry):
    mime_type: str | None = None
    extension: str = ""

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["mime_type"] = self.mime_type
        d["extension"] = self.extension
        return d


@dataclass
class FileWatchEvent:
    event_type: str                  # created | modified | deleted | renamed
    path: str
    old_path: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "path": self.path,
            "old_path": self.old_path,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ImportResult:
    success: bool
    book_id: str | None = None
    error: str | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "book_id": self.book_id,
            "error": self.error,
            "metadata": self.metadata,
        }


WatchCallback = Callable[[FileWatchEvent], None]


# ── Export rendering ────────────────────────────────────────────────

def render_export(data: Any, fmt: str) -> str:
    """Render ``data`` as json, csv, txt or md text.

    Raises UnsupportedFormatError for any other format.
    """
    fmt = fmt.lower()
    if fmt == "json":
        return json.dumps(data, indent=2, default=str)
    if fmt == "csv":
        return _to_csv(data)
    if fmt == "txt":
        return _to_text(data)
    if fmt == "md":
        return _to_markdown(data)
    raise UnsupportedFormatError(f"Unsupported export format: {fmt}")


def _to_csv(data: Any) -> str:
    # Only a list of records has columns; anything else is written as JSON.
    if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
        return json.dumps(data, default=str)
    if not data:
        return ""
    output = io.StringIO()
    writer = csv.DictWriter(
        output, fieldnames=list(data[0].keys()), extrasaction="ignore", lineterminator="\n",
    )
    writer.writeheader()
    for row in data:
        clean = {}
        for k, v in row.items():
            if isinstance(v, (list, dict)):
                clean[k] = json.dumps(v, default=str)
            else:
                clean[k] = v
        writer.writerow(clean)
    return output.getvalue()


def _to_text(data: Any) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, (dict, list)):
        return json.dumps(data, indent=2, default=str)
    return str(data)


def _to_markdown(data: Any) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, list):
        parts = []
        for item in data:
            if isinstance(item, dict):
                parts.append(f"## {item.get('title') or 'Item'}\n\n")
                parts.append(f"{item.get('content') or json.dumps(item, default=str)}\n\n")
            else:
                parts.append(f"## Item\n\n{item}\n\n")
        return "".join(parts)
    if isinstance(data, dict):
        body = data.get("content") or json.dumps(data, indent=2, default=str)
        return f"# {data.get('title') or 'Document'}\n\n{body}\n"
    return str(data)


# ── FileSystemManager ───────────────────────────────────────────────

class FileSystemManager:
    """Async file operations, ebook import and export.

    Args:
        window_manager:    Window registry exposed as ``.windows``; a fresh
                           one is created when omitted.
        note_store:        Needed only by ``export_notes``.
        supported_formats: Ebook extensions ``import_ebook`` accepts.
    """

    def __init__(
        self,
        window_manager: WindowManager | None = None,
        note_store: NoteStore | None = None,
        supported_formats: tuple[str, ...] | list[str] = SUPPORTED_FORMATS,
    ):
        self.windows = window_manager if window_manager is not None else WindowManager()
        self._notes = note_store
        self.supported_formats = tuple(f.lower() for f in supported_formats)
        self._watched: dict[str, WatchCallback] = {}

    # ── Files ───────────────────────────────────────────────────────

    async def read_file(self, path: str) -> bytes:
        logger.debug("Reading file: %s", path)
        return MOCK_FILE_CONTENT

    async def write_file(self, path: str, data: bytes | str) -> int:
        """Returns the number of bytes written."""
        try:
            if isinstance(data, str):
                data = data.encode("utf-8")
            size = len(data)
            logger.debug("Writing file: %s, size: %d bytes", path, size)
            return size
        except Exception as e:
            raise FileSystemError(f"Failed to write file {path}: {e}") from e

    async def delete_file(self, path: str) -> None:
        logger.debug("Deleting file: %s", path)

    async def copy_file(self, source: str, destination: str) -> None:
        try:
            data = await self.read_file(source)
            await self.write_file(destination, data)
            logger.info("Copied file from %s to %s", source, destination)
        except Exception as e:
            raise FileSystemError(
                f"Failed to copy file from {source} to {destination}: {e}"
            ) from e

    async def move_file(self, source: str, destination: str) -> None:
        try:
            await self.copy_file(source, destination)
            await self.delete_file(source)
            logger.info("Moved file from %s to %s", source, destination)
        except Exception as e:
            raise FileSystemError(
                f"Failed to move file from {source} to {destination}: {e}"
            ) from e

    # ── Directories ─────────────────────────────────────────────────

    async def read_directory(self, path: str) -> list[FileSystemEntry]:
        try:
            logger.debug("Reading directory: %s", path)
            base = path.rstrip("/")
            return [
                FileSystemEntry(
                    name="sample.epub",
                    path=f"{base}/sample.epub",
                    entry_type="file",
                    size=MOCK_FILE_SIZE,
                ),
                FileSystemEntry(
                    name="documents",
                    path=f"{base}/documents",
                    entry_type="directory",
                    size=0,
                    permissions=FilePermissions(execute=True),
                ),
            ]
        except Exception as e:
            raise FileSystemError(f"Failed to read directory {path}: {e}") from e

    async def create_directory(self, path: str) -> None:
        logger.debug("Creating directory: %s", path)

    async def delete_directory(self, path: str) -> None:
        logger.debug("Deleting directory: %s", path)

    # ── Metadata ────────────────────────────────────────────────────

    async def get_file_info(self, path: str) -> FileInfo:
        try:
            pure = PurePosixPath(path)
            extension = pure.suffix.lower()
            mime = _EBOOK_MIME_TYPES.get(extension) or mimetypes.guess_type(pure.name)[0]
            return FileInfo(
                name=pure.name or path,
                path=path,
                entry_type="file",
                size=MOCK_FILE_SIZE,
                mime_type=mime,
                extension=extension,
            )
        except Exception as e:
            raise FileSystemError(f"Failed to get file info for {path}: {e}") from e

    async def exists(self, path: str) -> bool:
        logger.debug("Checking if file exists: %s", path)
        return True

    # ── Watching ────────────────────────────────────────────────────

    async def watch_file(self, path: str, callback: WatchCallback) -> None:
        self._watched[path] = callback
        logger.info("Watching file: %s", path)

    async def unwatch_file(self, path: str) -> None:
        if self._watched.pop(path, None) is not None:
            logger.info("Stopped watching file: %s", path)

    def get_watched_files(self) -> list[str]:
        return list(self._watched)

    def notify_watchers(self, event: FileWatchEvent) -> bool:
        """Deliver a change event to the watcher registered for its path.

        Returns False when nobody watches the path.  Callback errors are
        logged and swallowed.
        """
        callback = self._watched.get(event.path)
        if callback is None:
            return False
        try:
            callback(event)
        except Exception:
            logger.exception("File watch callback failed for %s", event.path)
        return True

    # ── Import / export ─────────────────────────────────────────────

    async def import_ebook(self, path: str) -> ImportResult:
        """Import an ebook. Never raises; failures come back as a result."""
        try:
            info = await self.get_file_info(path)
            if info.extension not in self.supported_formats:
                return ImportResult(
                    success=False,
                    error=f"Unsupported file format: {info.extension or '(none)'}",
                )

            data = await self.read_file(path)
            logger.info("Importing ebook: %s, size: %d bytes", path, len(data))
            return ImportResult(
                success=True,
                book_id=uuid.uuid4().hex,
                metadata={
                    "title": info.name,
                    "author": "Unknown",
                    "format": info.extension,
                    "size": info.size,
                },
            )
        except Exception as e:
            logger.warning("Ebook import failed for %s: %s", path, e)
            return ImportResult(success=False, error=f"Failed to import ebook: {e}")

    async def export_data(self, data: Any, path: str, fmt: str) -> int:
        """Render ``data`` and write it to ``path``. Returns bytes written.

        Raises UnsupportedFormatError for unknown formats and
        FileSystemError when the write fails.
        """
        rendered = render_export(data, fmt)
        size = await self.write_file(path, rendered)
        logger.info("Exported data to %s in %s format", path, fmt.lower())
        return size

    async def export_notes(self, ebook_id: str, path: str, fmt: str = "md") -> int:
        """Export every note of an ebook through the attached note store."""
        if self._notes is None:
            raise RuntimeError("No note store attached")
        records = []
        for note in self._notes.get_notes_by_ebook(ebook_id):
            record = note.to_dict()
            record["title"] = note.chapter or note.topic or "Note"
            records.append(record)
        return await self.export_data(records, path, fmt)
