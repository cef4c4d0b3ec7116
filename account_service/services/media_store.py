"""Media storage for avatar and cover images."""

import asyncio
import shutil
from pathlib import Path
from typing import Optional
from uuid import uuid4

import structlog

from account_service.config import get_settings
from account_service.errors import MediaUploadError

logger = structlog.get_logger(__name__)


class LocalMediaStore:
    """Store uploaded media files in a local directory served as static files.

    References handed out are URLs of the form ``{base_url}/{file name}``;
    the file name is the last path segment of the reference.
    """

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        settings = get_settings()
        self.root = Path(root or settings.media_root)
        self.base_url = (base_url or settings.media_base_url).rstrip("/")

    def _path_for(self, ref: str) -> Optional[Path]:
        name = ref.rstrip("/").split("/")[-1]
        if not name or name in (".", ".."):
            return None
        return self.root / name

    async def upload(self, local_path: str) -> str:
        """Copy a local file into the media root.

        Args:
            local_path: Path of the file to store

        Returns:
            URL reference of the stored file

        Raises:
            MediaUploadError: If the file is missing or cannot be copied
        """
        source = Path(local_path)
        if not source.is_file():
            raise MediaUploadError(f"Media file not found: {source.name}")

        name = f"{uuid4().hex}{source.suffix.lower()}"
        target = self.root / name
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, source, target)
        except OSError as e:
            logger.error("media_upload_failed", file=source.name, error=str(e))
            raise MediaUploadError() from e

        url = f"{self.base_url}/{name}"
        logger.info("media_uploaded", url=url)
        return url

    async def delete(self, ref: Optional[str]) -> bool:
        """Delete a previously stored file.

        Args:
            ref: Reference returned by ``upload``; None or empty is a no-op

        Returns:
            True if a file was removed
        """
        if not ref:
            return False
        path = self._path_for(ref)
        if path is None or not path.is_file():
            logger.warning("media_delete_not_found", ref=ref)
            return False
        await asyncio.to_thread(path.unlink)
        logger.info("media_deleted", ref=ref)
        return True
