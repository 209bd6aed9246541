"""
Report upload to Supabase Storage.
"""

import asyncio
from typing import Optional

from shirokuma.config import get_settings
from shirokuma.logging_config import bot_logger as logger


class UploadError(Exception):
    """Raised when a report cannot be uploaded."""


class ReportUploader:
    """Uploads PDF reports to a Storage bucket and returns a public URL."""

    def __init__(self, supabase=None, bucket: str = "reports", folder: str = "shirokuma_reports"):
        self.supabase = supabase
        self.bucket = bucket
        self.folder = folder.strip("/")

    def _upload_sync(self, path: str, pdf_bytes: bytes) -> str:
        storage = self.supabase.storage.from_(self.bucket)
        storage.upload(
            path,
            pdf_bytes,
            file_options={"content-type": "application/pdf", "upsert": "true"}
        )
        return storage.get_public_url(path)

    async def upload_pdf(self, pdf_bytes: bytes, file_name: str) -> str:
        """
        Upload PDF bytes (overwriting any object with the same name).

        Returns:
            Public URL of the uploaded report

        Raises:
            UploadError: if storage is not configured or the upload fails
        """
        if self.supabase is None:
            raise UploadError("Report storage is not configured")

        path = f"{self.folder}/{file_name}" if self.folder else file_name
        try:
            # supabase-py storage calls are blocking
            url = await asyncio.to_thread(self._upload_sync, path, pdf_bytes)
        except Exception as e:
            logger.error(f"Report upload failed for {path}: {e}")
            raise UploadError(f"Failed to upload report: {e}") from e

        logger.info(f"Uploaded report {path}")
        return url


def get_report_uploader() -> ReportUploader:
    settings = get_settings()
    supabase = None
    if settings.supabase_url and settings.supabase_service_role_key:
        from shirokuma.supabase_client import get_supabase_admin
        supabase = get_supabase_admin()
    else:
        logger.warning("SUPABASE_URL not configured, PDF report delivery disabled")
    return ReportUploader(supabase, bucket=settings.report_bucket, folder=settings.report_folder)
