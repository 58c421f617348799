"""
Output store abstraction: creates, completes and deletes recording artifacts.
"""
import os
from abc import ABC, abstractmethod
from typing import Optional

from recording_options import OutputRef, StorageBackend
from lib.pr_log import pr_err


class OutputStore(ABC):
    """
    Persisted-file backend consumed by the recording session.

    ``create`` may leave the artifact pending until ``mark_complete`` is
    called. ``delete`` must work on pending artifacts and treats a missing
    artifact as already deleted.
    """

    backend: StorageBackend

    @abstractmethod
    def create(self, location: str, name: str, mime_type: str) -> Optional[OutputRef]:
        """
        Allocate a writable artifact.

        Returns:
            OutputRef on success, None if no writable target could be created
        """
        pass

    @abstractmethod
    def mark_complete(self, ref: OutputRef) -> bool:
        """Clear any pending marker and refresh modification metadata."""
        pass

    @abstractmethod
    def delete(self, ref: OutputRef) -> bool:
        pass

    @abstractmethod
    def exists(self, ref: OutputRef) -> bool:
        pass

    def owns(self, ref: OutputRef) -> bool:
        """Check that ref was produced by this store's backend."""
        if ref.backend != self.backend:
            pr_err(f"Reference {ref.uri} belongs to the {ref.backend.value} store, not {self.backend.value}")
            return False
        return True


def extension_for_mime(mime_type: str) -> str:
    """File extension used for a recording mime type."""
    return {
        "video/mp4": ".mp4",
        "video/webm": ".webm",
        "video/x-matroska": ".mkv",
    }.get(mime_type, "")


def unique_path(directory: str, name: str, extension: str) -> str:
    """
    Pick a path in directory that does not exist yet.

    Collisions get " (1)", " (2)", ... appended to the name.
    """
    candidate = os.path.join(directory, f"{name}{extension}")
    counter = 1
    while os.path.exists(candidate):
        candidate = os.path.join(directory, f"{name} ({counter}){extension}")
        counter += 1
    return candidate


def remove_file(path: str) -> bool:
    """Remove a file, treating an already missing file as success."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        pr_err(f"Cannot remove {path}: {e}")
        return False
    return True


def create_output_store(config) -> OutputStore:
    """
    Create the output store selected by configuration.

    The variant is chosen once, here; callers only see the OutputStore
    interface.
    """
    backend = StorageBackend(config.storage_backend)
    if backend == StorageBackend.MEDIA_INDEX:
        from media_index_store import MediaIndexStore
        return MediaIndexStore(config.media_root)

    from tree_store import TreeStore
    return TreeStore()
