"""Post-upload verification against the storage gateway.

IPFS content can take minutes to propagate to gateways. The verifier polls
the returned URI with growing intervals until the content is retrievable or
the time budget is spent. "Not found yet" is expected and is not an error.
"""

import asyncio
import time
from typing import Callable

import structlog

from dropmint.services.exceptions import (
    ServiceError,
    VerificationMismatchError,
    VerificationTimeoutError,
)
from dropmint.services.interfaces import FetchResponse, Uploader

logger = structlog.get_logger()

UNKNOWN_CONTENT_TYPE = "application/octet-stream"


def content_type_family(content_type: str | None) -> str:
    """Return the major type of a content-type header ("image/png; x=y" -> "image")."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().split("/", 1)[0].lower()


class UploadVerifier:
    """Polls uploaded URIs and checks their content."""

    def __init__(
        self,
        uploader: Uploader,
        timeout_seconds: float = 900.0,
        initial_interval: float = 2.0,
        max_interval: float = 60.0,
        backoff_factor: float = 1.5,
        byte_compare_limit: int = 5 * 1024 * 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize verifier.

        Args:
            uploader: Storage client used to fetch URIs
            timeout_seconds: Total wall-clock budget per artifact (default: 15 minutes)
            initial_interval: First poll interval in seconds
            max_interval: Upper bound for the poll interval
            backoff_factor: Interval growth per unsuccessful poll
            byte_compare_limit: Payloads up to this size are compared byte for byte;
                larger payloads are checked by declared size only
            clock: Monotonic clock (overridable in tests)
        """
        self.uploader = uploader
        self.timeout_seconds = timeout_seconds
        self.initial_interval = initial_interval
        self.max_interval = max_interval
        self.backoff_factor = backoff_factor
        self.byte_compare_limit = byte_compare_limit
        self.clock = clock

    async def verify(self, uri: str, expected: bytes, content_type: str) -> None:
        """Wait until uri serves the expected content.

        Raises:
            VerificationTimeoutError: Content not retrievable within the budget
            VerificationMismatchError: Content retrieved but does not match
        """
        started = self.clock()
        deadline = started + self.timeout_seconds
        interval = self.initial_interval
        polls = 0
        last_status: int | None = None

        while True:
            polls += 1
            try:
                response = await self.uploader.fetch(uri)
                last_status = response.status
            except ServiceError as e:
                response = None
                logger.debug("verify.fetch_failed", uri=uri, poll=polls, error=str(e))

            if response is not None and response.status == 200:
                self._check_content(uri, response, expected, content_type)
                logger.info(
                    "verify.succeeded",
                    uri=uri,
                    polls=polls,
                    elapsed_seconds=round(self.clock() - started, 2),
                )
                return

            remaining = deadline - self.clock()
            if remaining <= 0:
                elapsed = self.clock() - started
                logger.warning(
                    "verify.timeout",
                    uri=uri,
                    polls=polls,
                    elapsed_seconds=round(elapsed, 2),
                    last_status=last_status,
                )
                raise VerificationTimeoutError(uri, elapsed, last_status)

            logger.debug(
                "verify.not_available_yet",
                uri=uri,
                poll=polls,
                status=last_status,
                next_poll_in_seconds=min(interval, remaining),
            )
            await asyncio.sleep(min(interval, remaining))
            interval = min(self.max_interval, interval * self.backoff_factor)

    def _check_content(
        self, uri: str, response: FetchResponse, expected: bytes, content_type: str
    ) -> None:
        served_type = response.header("content-type")
        served_family = content_type_family(served_type)
        if (
            served_family
            and served_type.split(";", 1)[0].strip().lower() != UNKNOWN_CONTENT_TYPE
            and served_family != content_type_family(content_type)
        ):
            raise VerificationMismatchError(
                f"{uri} served as {served_type}, expected {content_type}",
                cause=f"content-type={served_type}",
            )

        if len(expected) <= self.byte_compare_limit:
            if response.content != expected:
                raise VerificationMismatchError(
                    f"{uri} content differs from uploaded bytes",
                    cause=f"expected {len(expected)} bytes, got {len(response.content)}",
                )
            return

        declared = response.header("content-length")
        size = int(declared) if declared and declared.isdigit() else len(response.content)
        if size != len(expected):
            raise VerificationMismatchError(
                f"{uri} size {size} differs from uploaded size {len(expected)}",
                cause=f"declared_size={size}",
            )
