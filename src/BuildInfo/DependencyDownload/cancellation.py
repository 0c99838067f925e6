"""Cooperative cancellation for dependency batches.

Downloads are not interrupted from the outside.  Instead the batch loop checks
the token before scheduling each artifact, and :class:`~.storage.LocalFileStore`
checks it between chunks while staging a download, so an interrupted save can
remove its temporary file and never leaves a partial file at the target path.
"""

from __future__ import annotations

import threading


class CancellationToken:
    """Thread-safe flag shared between the caller and the download workers.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal that no further work should be started or completed."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Return True once :meth:`cancel` has been called."""
        return self._is_cancelled.is_set()

    def reset(self) -> None:
        """Clear the flag so the token can be reused for another batch."""
        self._is_cancelled.clear()
# === NAVMAP v1 ===
# {
#   "module": "BuildInfo.DependencyDownload.cancellation",
#   "purpose": "Provide the cooperative cancellation token checked by batch downloads and staged saves",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
