"""Registry reference parsing and canonical cache filenames

A reference such as ``docker://quay.io/cyverse/kallisto:0.43.1`` becomes a
:class:`RegistryReference` and, from that, the cache filename
``quay.io#cyverse#kallisto#0.43.1.img``.
"""

import re
from dataclasses import dataclass
from typing import Tuple

from bosun.core.errors import InvalidReferenceError, UnsupportedProtocolError

SUPPORTED_PROTOCOLS = ("docker", "shub")
DEFAULT_PROTOCOL = "docker"
DEFAULT_TAG = "latest"

SEPARATOR = "#"
EXTENSION = ".img"

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*)://")


@dataclass(frozen=True)
class RegistryReference:
    """Parsed image reference"""

    protocol: str
    segments: Tuple[str, ...]
    tag: str = DEFAULT_TAG

    @property
    def repository(self) -> str:
        return "/".join(self.segments)

    @property
    def name(self) -> str:
        """Repository and tag as the engines expect them (repo:tag)"""
        return f"{self.repository}:{self.tag}"

    @property
    def uri(self) -> str:
        return f"{self.protocol}://{self.name}"

    @property
    def canonical_name(self) -> str:
        return SEPARATOR.join(self.segments + (self.tag,)) + EXTENSION

    def __str__(self) -> str:
        return self.uri


def normalize(text: str) -> RegistryReference:
    """Parse a user supplied image reference

    Args:
        text: Reference, optionally prefixed with docker:// or shub://

    Returns:
        RegistryReference with protocol, path segments and tag

    Raises:
        UnsupportedProtocolError: An explicit scheme other than docker/shub
        InvalidReferenceError: Empty reference or empty path components
    """
    if text is None or not text.strip():
        raise InvalidReferenceError("Empty image reference")
    text = text.strip()

    protocol = DEFAULT_PROTOCOL
    match = _SCHEME_RE.match(text)
    if match:
        protocol = match.group(1).lower()
        if protocol not in SUPPORTED_PROTOCOLS:
            raise UnsupportedProtocolError(protocol)
        text = text[match.end():]

    if SEPARATOR in text:
        raise InvalidReferenceError(f"'{SEPARATOR}' is not allowed in image references: {text}")

    # Only a colon after the last slash separates the tag; host:port stays in the path
    repository, tag = text, DEFAULT_TAG
    head, sep, tail = text.rpartition(":")
    if sep and "/" not in tail:
        repository, tag = head, tail
        if not tag:
            raise InvalidReferenceError(f"Empty tag in reference: {text}")

    segments = tuple(repository.split("/"))
    if not all(segments):
        raise InvalidReferenceError(f"Empty path component in reference: {text}")

    return RegistryReference(protocol=protocol, segments=segments, tag=tag)


def parse_canonical_name(filename: str) -> Tuple[str, str]:
    """Recover (repository, tag) from a cache filename

    The last separated part is taken as the tag. Files written before tags kept
    their dots (``cyverse#kallisto#0#43#1.img``) therefore decode with the
    residual last part as tag.
    """
    stem = filename[:-len(EXTENSION)] if filename.endswith(EXTENSION) else filename
    parts = stem.split(SEPARATOR)
    if len(parts) < 2:
        return stem, DEFAULT_TAG
    return "/".join(parts[:-1]), parts[-1]
