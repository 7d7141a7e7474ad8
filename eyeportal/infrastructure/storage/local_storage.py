import logging
import os
from datetime import datetime, timezone
from typing import Optional

from ...config import settings
from ...application.ports.storage_repo import StorageRepository

logger = logging.getLogger(__name__)


class LocalStorageRepository(StorageRepository):
    """Scan images on local disk, one directory per patient."""

    def __init__(self, upload_dir: Optional[str] = None) -> None:
        self.upload_dir = upload_dir or settings.UPLOAD_DIR

    def save_bytes(self, subdir: str, filename: str, data: bytes) -> str:
        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        name = f"{stamp}_{os.path.basename(filename) or 'scan.png'}"
        parts = [p for p in subdir.split("/") if p not in ("", ".", "..")] if subdir else []
        dest_dir = os.path.join(self.upload_dir, *parts)
        os.makedirs(dest_dir, exist_ok=True)
        path = os.path.join(dest_dir, name)
        with open(path, "wb") as f:
            f.write(data)
        logger.debug(f"Stored {len(data)} bytes at {path}")
        return path
