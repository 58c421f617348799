"""
Output store backed by a structured media index.

Artifacts live under a media root directory; an sqlite index next to them
records display name, relative path, mime type, dates and a pending flag.
Rows are inserted pending and only become visible as finished recordings
once marked complete.
"""
import os
import sqlite3
import time
from contextlib import closing
from typing import Optional

from output_store import OutputStore, extension_for_mime, remove_file, unique_path
from recording_options import OutputRef, StorageBackend
from lib.pr_log import pr_debug, pr_err, pr_warn

INDEX_FILENAME = ".media_index.db"
URI_SCHEME = "media://"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS media (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    display_name TEXT NOT NULL,
    relative_path TEXT NOT NULL,
    mime_type TEXT NOT NULL,
    date_added INTEGER NOT NULL,
    date_modified INTEGER NOT NULL,
    is_pending INTEGER NOT NULL DEFAULT 1
)
"""


class MediaIndexStore(OutputStore):
    """Structured media index with pending/complete tracking."""

    backend = StorageBackend.MEDIA_INDEX

    def __init__(self, media_root: str):
        self.media_root = os.path.abspath(os.path.expanduser(media_root))
        self.index_path = os.path.join(self.media_root, INDEX_FILENAME)

    def _connect(self) -> sqlite3.Connection:
        os.makedirs(self.media_root, exist_ok=True)
        conn = sqlite3.connect(self.index_path)
        conn.row_factory = sqlite3.Row
        conn.execute(_SCHEMA)
        return conn

    def _row_id(self, ref: OutputRef) -> Optional[int]:
        if ref.backend != self.backend or not ref.uri.startswith(URI_SCHEME):
            return None
        try:
            return int(ref.uri[len(URI_SCHEME):])
        except ValueError:
            return None

    def create(self, location: str, name: str, mime_type: str) -> Optional[OutputRef]:
        relative_path = location.strip("/\\")
        directory = os.path.join(self.media_root, relative_path)
        now = time.time()
        try:
            os.makedirs(directory, exist_ok=True)
            path = unique_path(directory, name, extension_for_mime(mime_type))
            # exclusive create so a racing writer cannot share the file
            with open(path, "xb"):
                pass
        except OSError as e:
            pr_err(f"Cannot create recording in media index: {e}")
            return None

        try:
            with closing(self._connect()) as conn, conn:
                cursor = conn.execute(
                    "INSERT INTO media (display_name, relative_path, mime_type,"
                    " date_added, date_modified, is_pending) VALUES (?, ?, ?, ?, ?, 1)",
                    (os.path.basename(path), relative_path, mime_type,
                     int(now * 1000), int(now))
                )
                row_id = cursor.lastrowid
        except sqlite3.Error as e:
            pr_err(f"Media index insert failed: {e}")
            remove_file(path)
            return None

        pr_debug(f"Media index entry {row_id} created at {path} (pending)")
        return OutputRef(uri=f"{URI_SCHEME}{row_id}", path=path, backend=self.backend)

    def mark_complete(self, ref: OutputRef) -> bool:
        row_id = self._row_id(ref)
        if row_id is None:
            pr_err(f"Not a media index reference: {ref.uri}")
            return False

        now = time.time()
        try:
            with closing(self._connect()) as conn, conn:
                cursor = conn.execute(
                    "UPDATE media SET is_pending = 0, date_added = ?, date_modified = ?"
                    " WHERE id = ?",
                    (int(now * 1000), int(now), row_id)
                )
                updated = cursor.rowcount
        except sqlite3.Error as e:
            pr_err(f"Media index update failed: {e}")
            return False

        if updated == 0:
            pr_warn(f"Media index entry {row_id} not found")
            return False
        return True

    def delete(self, ref: OutputRef) -> bool:
        """Remove the indexed file, then its row. The file is resolved from the index, never from ref.path."""
        row_id = self._row_id(ref)
        if row_id is None:
            pr_err(f"Not a media index reference: {ref.uri}")
            return False

        try:
            row = self.lookup(ref)
        except sqlite3.Error as e:
            pr_err(f"Media index lookup failed: {e}")
            return False
        if row is None:
            pr_warn(f"Media index entry {row_id} not found")
            return False

        path = self.indexed_path(row)
        if os.path.normpath(path) != os.path.normpath(ref.path):
            pr_warn(f"Reference path {ref.path} does not match indexed file {path}")
        if not remove_file(path):
            return False

        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM media WHERE id = ?", (row_id,))
        except sqlite3.Error as e:
            pr_err(f"Media index delete failed: {e}")
            return False
        return True

    def indexed_path(self, row: sqlite3.Row) -> str:
        return os.path.join(self.media_root, row["relative_path"], row["display_name"])

    def exists(self, ref: OutputRef) -> bool:
        row = self.lookup(ref)
        return row is not None and os.path.exists(self.indexed_path(row))

    def is_pending(self, ref: OutputRef) -> bool:
        row = self.lookup(ref)
        return bool(row and row["is_pending"])

    def lookup(self, ref: OutputRef) -> Optional[sqlite3.Row]:
        """Fetch the index row for ref, or None."""
        row_id = self._row_id(ref)
        if row_id is None:
            return None
        with closing(self._connect()) as conn:
            return conn.execute("SELECT * FROM media WHERE id = ?", (row_id,)).fetchone()

