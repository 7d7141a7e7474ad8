from typing import Protocol


class StorageRepository(Protocol):
    def save_bytes(self, subdir: str, filename: str, data: bytes) -> str:
        """Persist image bytes and return the reference stored on the scan record."""
        ...
