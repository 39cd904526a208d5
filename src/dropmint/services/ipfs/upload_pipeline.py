"""Upload pipeline: media first, then metadata pointing at the media URI.

Each artifact goes through the shared RetryPolicy and, when a verifier is
configured, is confirmed retrievable before the next step starts.
"""

import json
import time

import structlog

from dropmint.models.metadata import MetadataDocument
from dropmint.models.results import FolderContents, UploadResult
from dropmint.services.exceptions import (
    UploadError,
    UploadFailureKind,
    UploadInsufficientFundsError,
    is_insufficient_funds,
)
from dropmint.services.interfaces import Uploader
from dropmint.services.ipfs.verification import UploadVerifier
from dropmint.services.retry import RetryError, RetryPolicy

logger = structlog.get_logger()

METADATA_CONTENT_TYPE = "application/json"


def encode_metadata(document: dict) -> bytes:
    return json.dumps(document, ensure_ascii=False, indent=2).encode("utf-8")


class UploadPipeline:
    """Moves a folder's media and metadata into content-addressed storage."""

    def __init__(
        self,
        uploader: Uploader,
        retry_policy: RetryPolicy | None = None,
        verifier: UploadVerifier | None = None,
    ):
        self.uploader = uploader
        self.retry_policy = retry_policy or RetryPolicy()
        self.verifier = verifier

    async def upload(self, contents: FolderContents, document: MetadataDocument) -> UploadResult:
        """Upload media, then the derived metadata document.

        Args:
            contents: Loaded folder (media descriptor and metadata file path)
            document: Validated metadata

        Returns:
            UploadResult with media and metadata URIs

        Raises:
            UploadError: Upload rejected or retries exhausted
            UploadInsufficientFundsError: Storage account cannot pay
            VerificationTimeoutError: Uploaded content not retrievable in time
            VerificationMismatchError: Retrieved content differs from upload
        """
        start_time = time.time()
        media = contents.media
        folder = media.path.parent.name

        media_bytes = media.path.read_bytes()
        logger.info(
            "upload.media_started",
            folder=folder,
            file=media.name,
            size_kb=round(len(media_bytes) / 1024, 1),
        )
        media_uri = await self._upload_artifact(
            media_bytes, media.name, media.content_type, folder=folder, artifact="media"
        )
        logger.info("upload.media_uploaded", folder=folder, uri=media_uri)
        if self.verifier is not None:
            await self.verifier.verify(media_uri, media_bytes, media.content_type)

        metadata_bytes = encode_metadata(document.offchain_json(media_uri))
        metadata_uri = await self._upload_artifact(
            metadata_bytes,
            contents.metadata_file.name,
            METADATA_CONTENT_TYPE,
            folder=folder,
            artifact="metadata",
        )
        logger.info("upload.metadata_uploaded", folder=folder, uri=metadata_uri)
        if self.verifier is not None:
            await self.verifier.verify(metadata_uri, metadata_bytes, METADATA_CONTENT_TYPE)

        logger.info(
            "upload.succeeded",
            folder=folder,
            media_uri=media_uri,
            metadata_uri=metadata_uri,
            verified=self.verifier is not None,
            duration_seconds=round(time.time() - start_time, 2),
        )
        return UploadResult(media_uri=media_uri, metadata_uri=metadata_uri)

    async def _upload_artifact(
        self, data: bytes, filename: str, content_type: str, *, folder: str, artifact: str
    ) -> str:
        try:
            return await self.retry_policy.run(
                lambda: self.uploader.upload(data, filename, content_type),
                operation_name=f"upload.{artifact}",
                folder=folder,
                filename=filename,
            )
        except RetryError as e:
            if is_insufficient_funds(e.last_error):
                raise UploadInsufficientFundsError(
                    f"Insufficient funds to upload {artifact} {filename}",
                    attempts=e.attempts,
                    last_error=e.last_error,
                ) from e.last_error

            kind = (
                UploadFailureKind.RETRIES_EXHAUSTED if e.retryable else UploadFailureKind.REJECTED
            )
            raise UploadError(
                f"Failed to upload {artifact} {filename} after {e.attempts} attempt(s)",
                kind=kind,
                attempts=e.attempts,
                last_error=e.last_error,
            ) from e.last_error
