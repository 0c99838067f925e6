"""Single-pass checksum calculation for downloaded dependencies.

The downloader identifies a local file by the pair of MD5 and SHA1 digests the
remote repository publishes for it.  Large artifacts are read exactly once:
every requested algorithm gets its own hash state and each chunk read from disk
is fed to all of them before the next read.  Algorithm names are the literal,
case-sensitive identifiers ``"MD5"`` and ``"SHA1"``; anything else is a
configuration error and is rejected before the file is opened.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .errors import IOFailure, UnsupportedAlgorithm

__all__ = [
    "MD5_ALGORITHM_NAME",
    "SHA1_ALGORITHM_NAME",
    "SUPPORTED_ALGORITHMS",
    "ChecksumPair",
    "calculate_checksums",
]

MD5_ALGORITHM_NAME = "MD5"
SHA1_ALGORITHM_NAME = "SHA1"

_HASH_FACTORIES: Dict[str, Callable[[], Any]] = {
    MD5_ALGORITHM_NAME: lambda: hashlib.md5(usedforsecurity=False),
    SHA1_ALGORITHM_NAME: lambda: hashlib.sha1(usedforsecurity=False),
}
SUPPORTED_ALGORITHMS = tuple(_HASH_FACTORIES)

_CHUNK_SIZE = 1 << 20


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


@dataclass(slots=True, frozen=True)
class ChecksumPair:
    """MD5/SHA1 digests identifying one local file.

    Attributes:
        md5: Lowercase hexadecimal MD5 digest.
        sha1: Lowercase hexadecimal SHA1 digest.

    Examples:
        >>> pair = ChecksumPair(md5="d41d8cd98f00b204e9800998ecf8427e",
        ...                     sha1="da39a3ee5e6b4b0d3255bfef95601890afd80709")
        >>> pair.to_mapping()["MD5"]
        'd41d8cd98f00b204e9800998ecf8427e'
    """

    md5: str
    sha1: str

    @classmethod
    def from_mapping(cls, checksums: Mapping[str, str]) -> "ChecksumPair":
        """Build a pair from the mapping returned by :func:`calculate_checksums`."""

        return cls(md5=checksums[MD5_ALGORITHM_NAME], sha1=checksums[SHA1_ALGORITHM_NAME])

    def to_mapping(self) -> Dict[str, str]:
        """Return the ``{"MD5": ..., "SHA1": ...}`` representation."""

        return {MD5_ALGORITHM_NAME: self.md5, SHA1_ALGORITHM_NAME: self.sha1}

    def matches(self, md5: Optional[str], sha1: Optional[str]) -> bool:
        """Return True when both expected digests are non-blank and equal to this pair.

        The comparison is an exact string comparison; an expected digest in a
        different case does not match.
        """

        if _is_blank(md5) or _is_blank(sha1):
            return False
        return md5 == self.md5 and sha1 == self.sha1


def calculate_checksums(
    path: Union[str, Path],
    *algorithms: str,
    chunk_size: int = _CHUNK_SIZE,
) -> Dict[str, str]:
    """Compute digests for ``path`` in a single read pass.

    Args:
        path: File whose digests should be calculated.
        *algorithms: Algorithm names, each one of :data:`SUPPORTED_ALGORITHMS`.
            Defaults to both MD5 and SHA1 when omitted.
        chunk_size: Number of bytes read per iteration.

    Returns:
        Mapping of algorithm name to lowercase hexadecimal digest, keyed in the
        order the algorithms were requested.

    Raises:
        UnsupportedAlgorithm: If any requested name is not recognised. No file
            access happens in that case.
        IOFailure: If the file cannot be opened or read.
    """

    requested = algorithms or SUPPORTED_ALGORITHMS
    for name in requested:
        if name not in _HASH_FACTORIES:
            raise UnsupportedAlgorithm(name)

    hashers = {name: _HASH_FACTORIES[name]() for name in requested}
    target = Path(path)
    try:
        with target.open("rb") as stream:
            for chunk in iter(lambda: stream.read(chunk_size), b""):
                for hasher in hashers.values():
                    hasher.update(chunk)
    except OSError as exc:
        raise IOFailure(f"Unable to read {target} for checksum calculation: {exc}", path=target) from exc
    return {name: hasher.hexdigest() for name, hasher in hashers.items()}
