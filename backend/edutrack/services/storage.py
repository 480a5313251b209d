"""
Local file storage for uploaded reports, resources and submissions.

Files are written under ``UPLOAD_PATH/<area>/<uuid><ext>``. Callers only
ever see the returned ``StoredFile`` metadata; bytes never travel through
aggregation results.
"""
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional

import aiofiles
import aiofiles.os

from edutrack.core.config import settings
from edutrack.core.exceptions import StorageError, ValidationError
from edutrack.core.logging_config import logger

REPORT_MIMETYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})

RESOURCE_MIMETYPES = REPORT_MIMETYPES | frozenset({
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
})

BULK_UPLOAD_EXTENSIONS = frozenset({".csv", ".xlsx"})


@dataclass
class StoredFile:
    key: str
    filename: str
    path: str
    mimetype: Optional[str]
    size: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "key": self.key,
            "filename": self.filename,
            "mimetype": self.mimetype,
            "size": self.size,
        }


class LocalFileStorage:
    """Filesystem-backed storage keyed by area and a random id"""

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or settings.UPLOAD_PATH)

    def _path_for(self, key: str) -> Path:
        safe_key = Path(key).as_posix().lstrip("/")
        if ".." in safe_key.split("/"):
            raise ValidationError("Invalid file key", field="file")
        return self.base_path / safe_key

    async def save(
        self,
        area: str,
        filename: str,
        content: bytes,
        mimetype: Optional[str] = None,
        allowed_mimetypes: Optional[Iterable[str]] = None,
        max_size: Optional[int] = None,
    ) -> StoredFile:
        """Validate and persist an upload, returning its reference"""
        if not content:
            raise ValidationError("Uploaded file is empty", field="file")
        if max_size is not None and len(content) > max_size:
            raise ValidationError(
                f"File size cannot exceed {max_size // (1024 * 1024)}MB", field="file"
            )
        if allowed_mimetypes is not None and mimetype not in set(allowed_mimetypes):
            raise ValidationError(f"File type '{mimetype}' is not allowed", field="file")

        key = f"{area}/{uuid.uuid4()}{Path(filename).suffix.lower()}"
        path = self._path_for(key)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.log_error_with_context(e, context="storage.save", file_key=key)
            raise StorageError() from e

        logger.info(f"Stored {filename} as {key} ({len(content)} bytes)")
        return StoredFile(key=key, filename=filename, path=str(path), mimetype=mimetype, size=len(content))

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.exists(self._path_for(key))

    def resolve(self, key: str) -> Path:
        """Filesystem path for a stored key (for streaming responses)"""
        return self._path_for(key)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            logger.log_error_with_context(e, context="storage.delete", file_key=key)
            raise StorageError() from e


_storage: Optional[LocalFileStorage] = None


def get_storage() -> LocalFileStorage:
    """FastAPI dependency returning the process-wide storage"""
    global _storage
    if _storage is None:
        _storage = LocalFileStorage()
    return _storage
