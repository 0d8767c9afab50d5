"""
auth/storage.py -- Blob storage for profile images.

The flows only need "upload these bytes, get back a public URL". Where the
bytes land (folder, naming) is decided here, not by the caller.

LocalBlobStorage writes under Settings.upload_dir and serves the files via the
/uploads StaticFiles mount in api/main.py.
"""

from __future__ import annotations

import logging
import mimetypes
import re
import time
import uuid
from pathlib import Path

logger = logging.getLogger("listing.auth.storage")

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")

PROFILE_FOLDER = "profiles"


class LocalBlobStorage:
    """Stores uploaded blobs on the local filesystem.

    Usage:
        storage = LocalBlobStorage("uploads", "http://localhost:8000/uploads")
        url = storage.upload(data, "me.png", "image/png")
    """

    def __init__(self, root: str | Path, public_url: str, folder: str = PROFILE_FOLDER) -> None:
        self.root = Path(root).resolve()
        self.public_url = public_url.rstrip("/")
        self.folder = folder
        (self.root / self.folder).mkdir(parents=True, exist_ok=True)

    def upload(self, data: bytes, filename: str, content_type: str | None = None) -> str:
        """Write the blob and return its public URL.

        The stored name is <epoch-ms>-<random>-<sanitized original name> so two
        uploads never collide and the original name cannot traverse out of the
        storage root.

        Raises ValueError if data is empty; OSError propagates on write failure.
        """
        if not data:
            raise ValueError("File buffer is empty")

        base = _SAFE_NAME_RE.sub("_", Path(filename or "upload").name).strip("._") or "upload"
        if not Path(base).suffix and content_type:
            base += mimetypes.guess_extension(content_type) or ""
        stored_name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{base}"

        target = self.root / self.folder / stored_name
        target.write_bytes(data)
        logger.info("Stored upload %s/%s (%d bytes)", self.folder, stored_name, len(data))
        return f"{self.public_url}/{self.folder}/{stored_name}"
