# === NAVMAP v1 ===
# {
#   "module": "BuildInfo.DependencyDownload.storage",
#   "purpose": "Local filesystem adapter used by the dependency downloader",
#   "sections": [
#     {"id": "helpers", "name": "Stream Helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "localfilestore", "name": "LocalFileStore", "anchor": "class-localfilestore", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Local filesystem adapter for downloaded dependencies.

Provides existence checks, directory/file disambiguation, sibling listing,
deletion, and staged saves.  A save streams into a hidden ``.part`` file in the
destination directory, fsyncs it, and renames it over the target path, so a
reader never observes a half-written dependency at its final location.  Any
failure (including cancellation or a remote stream error raised mid-copy)
removes the temporary file before the error propagates.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, List, Optional, Union

from .cancellation import CancellationToken
from .errors import DirectoryConflict, DownloadCancelled, IOFailure

__all__ = ["ByteStream", "LocalFileStore"]

LOGGER = logging.getLogger("BuildInfo.DependencyDownload.storage")

ByteStream = Union[BinaryIO, Iterable[bytes]]

_DEFAULT_CHUNK_SIZE = 1 << 20


def _iter_chunks(stream: ByteStream, chunk_size: int) -> Iterator[bytes]:
    read = getattr(stream, "read", None)
    if callable(read):
        yield from iter(lambda: read(chunk_size), b"")
        return
    for chunk in stream:
        if chunk:
            yield chunk


def _fsync_directory(directory: Path) -> None:
    try:
        fd = os.open(str(directory), os.O_RDONLY)
    except OSError:  # pragma: no cover - platforms without directory handles
        return
    try:
        os.fsync(fd)
    except OSError:  # pragma: no cover - filesystems that reject directory fsync
        pass
    finally:
        os.close(fd)


class LocalFileStore:
    """Filesystem operations used while reconciling dependencies.

    Attributes:
        chunk_size: Number of bytes copied per iteration when saving file-like streams.
    """

    def __init__(self, chunk_size: int = _DEFAULT_CHUNK_SIZE) -> None:
        self.chunk_size = chunk_size

    def exists(self, path: Union[str, Path]) -> bool:
        """Return True when anything (file, directory, or link target) exists at ``path``."""

        return Path(path).exists()

    def is_directory(self, path: Union[str, Path]) -> bool:
        """Return True when ``path`` is an existing directory."""

        return Path(path).is_dir()

    def save(
        self,
        stream: ByteStream,
        path: Union[str, Path],
        *,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> Path:
        """Write ``stream`` to ``path``, replacing an existing file.

        Args:
            stream: Binary file-like object or iterable of byte chunks.
            path: Final location of the file. Parent directories are created.
            cancellation_token: Checked between chunks.

        Returns:
            The path that was written.

        Raises:
            DirectoryConflict: If ``path`` is an existing directory.
            DownloadCancelled: If the token was cancelled mid-copy.
            IOFailure: On any local filesystem error.
        """

        target = Path(path)
        if target.is_dir():
            raise DirectoryConflict(target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # A plain exclusive open keeps the process umask on the final file.
            part_path = target.parent / f".{target.name}.{uuid.uuid4().hex}.part"
            handle = part_path.open("xb")
        except OSError as exc:
            raise IOFailure(f"Unable to prepare {target} for writing: {exc}", path=target) from exc

        bytes_written = 0
        try:
            with handle:
                for chunk in _iter_chunks(stream, self.chunk_size):
                    if cancellation_token is not None and cancellation_token.is_cancelled():
                        raise DownloadCancelled(f"Download to {target} was cancelled")
                    handle.write(chunk)
                    bytes_written += len(chunk)
                handle.flush()
                os.fsync(handle.fileno())
            if target.is_dir():
                raise DirectoryConflict(target)
            os.replace(part_path, target)
        except IsADirectoryError as exc:
            part_path.unlink(missing_ok=True)
            raise DirectoryConflict(target) from exc
        except OSError as exc:
            part_path.unlink(missing_ok=True)
            LOGGER.error(
                "filesystem error during save",
                extra={"stage": "download", "path": str(target), "error": str(exc)},
            )
            raise IOFailure(f"Failed to write {target}: {exc}", path=target) from exc
        except BaseException:
            part_path.unlink(missing_ok=True)
            raise

        _fsync_directory(target.parent)
        LOGGER.debug(
            "file saved",
            extra={"stage": "download", "path": str(target), "bytes": bytes_written},
        )
        return target

    def list_siblings(self, path: Union[str, Path]) -> List[Path]:
        """Return every entry of ``path``'s parent directory, ``path`` included when present.

        A missing parent yields an empty list.
        """

        parent = Path(path).parent
        try:
            return sorted(parent.iterdir())
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as exc:
            raise IOFailure(f"Unable to list {parent}: {exc}", path=parent) from exc

    def delete(self, path: Union[str, Path]) -> None:
        """Remove a file, link, or empty directory.

        Non-empty directories are left in place and reported as a failure.

        Raises:
            IOFailure: If the entry could not be removed.
        """

        target = Path(path)
        try:
            if target.is_dir() and not target.is_symlink():
                target.rmdir()
            else:
                target.unlink(missing_ok=True)
        except OSError as exc:
            raise IOFailure(f"Unable to delete {target}: {exc}", path=target) from exc
