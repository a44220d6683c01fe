"""
File-system backed content store.

Maps asset refs and content URIs onto local files:
- public://<path>          -> <public_dir>/<path>
- private://<path>         -> <private_dir>/<path>
- http(s)://host/sites/<site>/files/<path> -> <public_dir>/<path>
- http(s)://host/system/files/<path>       -> <private_dir>/<path>
- /sites/<site>/files/<path>, /system/files/<path> (same, host-relative)
- absolute file system paths are used as-is

Managed refs ("managed:<id>") are resolved through the asset directory's
current_uri.

Invariants:
    - Hashing streams the file in fixed-size chunks (no full read into memory)
    - Query strings and fragments never participate in path mapping
    - Paths never escape their storage root

How to change safely:
    - Keep URI mapping rules in sync with whatever discovers assets
    - Do not change the hash algorithm; stored checksums are SHA-256
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from pathlib import Path
from urllib.parse import unquote, urlsplit

from ..errors import ResourceError
from ..store.models import parse_ref
from .base import AssetDirectory

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 1024 * 1024

_PUBLIC_URL_PATH = re.compile(r"^/sites/[^/]+/files/(?P<rel>.+)$", re.IGNORECASE)
_PRIVATE_URL_PATH = re.compile(r"^/system/files/(?P<rel>.+)$", re.IGNORECASE)


class FilesystemContentStore:
    """ContentStore over local public/private file directories.

    Example:
        >>> store = FilesystemContentStore("/var/www/files", "/var/lib/private-files")
        >>> uri = store.resolve("public://reports/2019.pdf")
        >>> digest = store.hash(uri)
    """

    def __init__(
        self,
        public_dir: str,
        private_dir: str,
        directory: AssetDirectory | None = None,
    ) -> None:
        """Initialize the content store.

        Args:
            public_dir: Directory backing public:// URIs
            private_dir: Directory backing private:// URIs
            directory: Asset directory used to resolve managed refs
        """
        self.public_dir = Path(public_dir)
        self.private_dir = Path(private_dir)
        self.directory = directory

    def to_path(self, uri: str) -> Path | None:
        """Map a content URI or URL to a local path.

        Returns:
            Local path, or None if the URI is not backed by local storage
        """
        if uri.startswith("public://"):
            return self._under(self.public_dir, uri[len("public://"):])
        if uri.startswith("private://"):
            return self._under(self.private_dir, uri[len("private://"):])

        parts = urlsplit(uri)
        if parts.scheme in ("http", "https") or uri.startswith("/"):
            path = unquote(parts.path)
            match = _PUBLIC_URL_PATH.match(path)
            if match:
                return self._under(self.public_dir, match.group("rel"))
            match = _PRIVATE_URL_PATH.match(path)
            if match:
                return self._under(self.private_dir, match.group("rel"))
            if parts.scheme:
                return None
            return Path(path)

        return None

    @staticmethod
    def _under(root: Path, relative: str) -> Path | None:
        candidate = (root / relative.lstrip("/")).resolve()
        base = root.resolve()
        if candidate != base and base not in candidate.parents:
            logger.warning(
                "Rejected content path outside storage root",
                extra={"root": str(root), "relative": relative},
            )
            return None
        return candidate

    def resolve(self, ref: str) -> str | None:
        content_id, raw = parse_ref(ref)
        if content_id is not None:
            if self.directory is None:
                return None
            info = self.directory.lookup(ref)
            if info is None or not info.current_uri:
                return None
            uri = info.current_uri
        else:
            uri = raw

        path = self.to_path(uri)
        if path is None or not path.is_file():
            return None
        return uri

    def hash(self, uri: str) -> str:
        path = self.to_path(uri)
        if path is None:
            raise ResourceError(f"Content URI is not locally stored: {uri}", asset_ref=uri)

        digest = hashlib.sha256()
        try:
            with path.open("rb") as f:
                while True:
                    chunk = f.read(HASH_CHUNK_SIZE)
                    if not chunk:
                        break
                    digest.update(chunk)
        except OSError as e:
            raise ResourceError(f"Content not readable: {uri} ({e})", asset_ref=uri) from e
        return digest.hexdigest()

    def size(self, uri: str) -> int | None:
        path = self.to_path(uri)
        if path is None:
            return None
        try:
            return path.stat().st_size
        except OSError:
            return None

    def delete(self, uri: str) -> bool:
        path = self.to_path(uri)
        if path is None:
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ResourceError(f"Content could not be deleted: {uri} ({e})", asset_ref=uri) from e

        logger.info("Deleted content", extra={"uri": uri, "path": str(path)})
        return True
