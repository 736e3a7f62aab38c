"""Artifact storage for uploaded originals and generated images.

Blobs are written under ``<root_dir>/<namespace>/<name>`` and addressed by
``<url_prefix>/<namespace>/<name>``.  The API mounts ``root_dir`` at
``url_prefix`` with ``StaticFiles``, so every returned URL is directly
servable, the same way generated images are served from the gallery
directory.

Names and namespaces are reduced to a safe character set before they touch
the file system; a name can never escape its namespace directory.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_NAME_ATTEMPTS = 5
# Leaves room for a collision suffix under the usual 255-byte file name limit.
_MAX_NAME_LENGTH = 200


def sanitize_name(name: str) -> str:
    """Reduce a file or namespace name to ``[A-Za-z0-9._-]``.

    Runs of other characters collapse to a single underscore and leading dots
    are dropped, so ``"../my photo.jpg"`` becomes ``"_my_photo.jpg"``.  Names
    longer than 200 characters are shortened, keeping the extension.

    Args:
        name: Raw name (e.g. a client-supplied filename).

    Returns:
        The sanitized name, or ``"file"`` if nothing usable remains.
    """
    cleaned = _UNSAFE_CHARS.sub("_", name.strip()).lstrip(".")
    if len(cleaned) > _MAX_NAME_LENGTH:
        stem, dot, ext = cleaned.rpartition(".")
        if dot and stem and len(ext) < 16:
            cleaned = f"{stem[: _MAX_NAME_LENGTH - len(ext) - 1]}.{ext}"
        else:
            cleaned = cleaned[:_MAX_NAME_LENGTH]
    return cleaned or "file"


def _is_safe(part: str) -> bool:
    return bool(part) and not part.startswith(".") and _UNSAFE_CHARS.search(part) is None


@dataclass(frozen=True)
class StoredArtifact:
    """A blob that has been written to the store.

    Attributes:
        url: Public URL of the blob.
        pathname: Store-relative path (``namespace/name``).
    """

    url: str
    pathname: str


class ArtifactStoreError(RuntimeError):
    """Raised when a blob cannot be written."""


class LocalArtifactStore:
    """File-system artifact store served through a static URL prefix.

    Attributes:
        root_dir: Directory that holds every namespace.
        url_prefix: URL prefix mapped to ``root_dir`` (no trailing slash).
    """

    def __init__(self, root_dir: Path, url_prefix: str = "/storage") -> None:
        self.root_dir = Path(root_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def upload(self, data: bytes, name: str, namespace: str) -> StoredArtifact:
        """Write ``data`` as a new blob.

        Existing blobs are never overwritten.  If ``name`` is taken, a random
        suffix is inserted before the extension
        (``photo.jpg`` → ``photo-3f9a1c2e.jpg``).

        Args:
            data: Blob content.
            name: Desired file name (sanitized before use).
            namespace: Grouping directory, e.g. ``"avatars"``.

        Returns:
            The stored artifact with its public URL.

        Raises:
            ArtifactStoreError: If the write fails.
        """
        safe_namespace = sanitize_name(namespace)
        safe_name = sanitize_name(name)
        target_dir = self.root_dir / safe_namespace
        target_dir.mkdir(parents=True, exist_ok=True)

        candidate = safe_name
        for _ in range(_MAX_NAME_ATTEMPTS):
            try:
                # "xb" refuses to overwrite an existing blob.
                with open(target_dir / candidate, "xb") as handle:
                    handle.write(data)
                break
            except FileExistsError:
                stem, dot, ext = safe_name.rpartition(".")
                suffix = secrets.token_hex(4)
                candidate = f"{stem}-{suffix}.{ext}" if dot and stem else f"{safe_name}-{suffix}"
            except OSError as e:
                raise ArtifactStoreError(
                    f"Failed to write blob {safe_namespace}/{candidate}: {e}"
                ) from e
        else:
            raise ArtifactStoreError(f"Could not find a free name for {safe_namespace}/{safe_name}")

        pathname = f"{safe_namespace}/{candidate}"
        logger.info(f"Stored blob {pathname} ({len(data)} bytes)")
        return StoredArtifact(url=f"{self.url_prefix}/{pathname}", pathname=pathname)

    def delete(self, url: str) -> None:
        """Delete the blob behind ``url``.

        URLs that don't belong to this store and blobs that are already gone
        are ignored.
        """
        path = self.path_for(url)
        if path is None:
            logger.warning(f"Ignoring delete for foreign URL: {url}")
            return

        if path.exists():
            path.unlink()
            logger.info(f"Deleted blob {path.relative_to(self.root_dir)}")
        else:
            logger.debug(f"Blob already absent: {url}")

    def read(self, url: str) -> bytes:
        """Return the content of the blob behind ``url``.

        Raises:
            FileNotFoundError: If the URL doesn't map to an existing blob.
        """
        path = self.path_for(url)
        if path is None or not path.exists():
            raise FileNotFoundError(url)
        return path.read_bytes()

    def path_for(self, url: str) -> Path | None:
        """Map a store URL back to its file, or None if it isn't one of ours."""
        prefix = f"{self.url_prefix}/"
        if not url.startswith(prefix):
            return None

        relative = url[len(prefix):]
        parts = relative.split("/")
        if len(parts) != 2 or not all(_is_safe(part) for part in parts):
            return None

        return self.root_dir / parts[0] / parts[1]
