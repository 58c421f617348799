"""
Output store writing straight into a user-chosen directory tree.
"""
import os
from pathlib import Path
from typing import Optional

from output_store import OutputStore, extension_for_mime, remove_file, unique_path
from recording_options import OutputRef, StorageBackend
from lib.pr_log import pr_debug, pr_err


class TreeStore(OutputStore):
    """
    Files are created directly in the target directory, with no pending
    state. Completing an artifact only refreshes its modification time.
    """

    backend = StorageBackend.TREE

    def create(self, location: str, name: str, mime_type: str) -> Optional[OutputRef]:
        directory = os.path.abspath(os.path.expanduser(location))
        if not os.path.isdir(directory):
            pr_err(f"Save location does not exist: {directory}")
            return None
        if not os.access(directory, os.W_OK):
            pr_err(f"Save location is not writable: {directory}")
            return None

        try:
            path = unique_path(directory, name, extension_for_mime(mime_type))
            with open(path, "xb"):
                pass
        except OSError as e:
            pr_err(f"Cannot create recording file: {e}")
            return None

        pr_debug(f"Created {path}")
        return OutputRef(uri=Path(path).as_uri(), path=path, backend=self.backend)

    def mark_complete(self, ref: OutputRef) -> bool:
        if not self.owns(ref):
            return False
        try:
            os.utime(ref.path)
        except OSError as e:
            pr_err(f"Cannot update {ref.path}: {e}")
            return False
        return True

    def delete(self, ref: OutputRef) -> bool:
        if not self.owns(ref):
            return False
        return remove_file(ref.path)

    def exists(self, ref: OutputRef) -> bool:
        return ref.backend == self.backend and os.path.exists(ref.path)
