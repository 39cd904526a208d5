"""Error hierarchy for storage, blockchain and pipeline operations.

This module defines two families of exceptions:
- ServiceError: raised by collaborators (Pinata, web3). Split into
  TransientError (retryable) and PermanentError (not retryable).
- PipelineError: raised by the folder pipeline steps. Every PipelineError is
  caught at the per-folder boundary and attributed to a folder name.
"""

from enum import Enum


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    - Transaction submission failures
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Insufficient funds
    - Transaction reverts
    """

    pass


# IPFS-specific errors
class IPFSRateLimitError(TransientError):
    """Rate limit exceeded (429)."""

    pass


class IPFSNetworkError(TransientError):
    """Network timeout or service unavailable."""

    pass


class IPFSAuthError(PermanentError):
    """Authentication failure (401, 403)."""

    pass


class IPFSValidationError(PermanentError):
    """Bad request (400)."""

    pass


class IPFSInsufficientFundsError(PermanentError):
    """Storage account has no balance or quota left (402)."""

    pass


# Blockchain-specific errors
class GasEstimationError(TransientError):
    """Gas estimation failed."""

    pass


class InsufficientFundsError(PermanentError):
    """Minter wallet cannot pay for gas."""

    pass


class TransactionSubmissionError(TransientError):
    """Transaction submission failed."""

    pass


class TransactionTimeoutError(TransientError):
    """Transaction confirmation timeout."""

    pass


class TransactionRevertError(PermanentError):
    """Transaction reverted on-chain."""

    pass


def is_insufficient_funds(error: BaseException) -> bool:
    """Return True if an error signals an empty wallet or storage balance."""
    if isinstance(error, (IPFSInsufficientFundsError, InsufficientFundsError)):
        return True
    message = str(error).lower()
    return "insufficient funds" in message or "insufficient balance" in message


# Pipeline errors
class PipelineError(Exception):
    """Base exception for a folder that cannot be minted.

    Attributes:
        folder: Folder name the error belongs to (filled in by the controller
            when the raising step does not know it)
        cause: String form of the underlying error, if any
    """

    def __init__(self, message: str, *, folder: str | None = None, cause: str | None = None):
        super().__init__(message)
        self.folder = folder
        self.cause = cause


class MissingFolderError(PipelineError):
    """Folder disappeared before it could be loaded."""

    pass


class MissingMediaError(PipelineError):
    """Folder contains no allow-listed media file."""

    pass


class MissingMetadataError(PipelineError):
    """Folder contains no .json metadata file."""

    pass


class InvalidMetadataError(PipelineError):
    """Metadata file is unreadable or lacks a usable name."""

    pass


class UploadFailureKind(str, Enum):
    """Why an artifact upload gave up."""

    RETRIES_EXHAUSTED = "retries_exhausted"
    REJECTED = "rejected"
    INSUFFICIENT_FUNDS = "insufficient_funds"


class UploadError(PipelineError):
    """Artifact could not be stored.

    Attributes:
        kind: Whether retries ran out or the failure was not retryable
        attempts: Number of upload attempts made
        last_error: The last underlying exception
    """

    def __init__(
        self,
        message: str,
        *,
        kind: UploadFailureKind,
        attempts: int,
        last_error: BaseException | None = None,
        folder: str | None = None,
    ):
        super().__init__(
            message,
            folder=folder,
            cause=str(last_error) if last_error is not None else None,
        )
        self.kind = kind
        self.attempts = attempts
        self.last_error = last_error


class UploadInsufficientFundsError(UploadError):
    """Upload refused because the storage account cannot pay. Not retried."""

    def __init__(self, message: str, *, attempts: int, last_error: BaseException | None = None):
        super().__init__(
            message,
            kind=UploadFailureKind.INSUFFICIENT_FUNDS,
            attempts=attempts,
            last_error=last_error,
        )


class VerificationTimeoutError(PipelineError):
    """Uploaded content was not retrievable within the verification budget.

    The upload itself may have succeeded; storage propagation can lag. The
    folder is left in place so an operator can retry it.
    """

    def __init__(self, uri: str, elapsed_seconds: float, last_status: int | None = None):
        super().__init__(
            f"{uri} not retrievable after {elapsed_seconds:.0f}s (last status: {last_status})",
            cause=f"last_status={last_status}",
        )
        self.uri = uri
        self.elapsed_seconds = elapsed_seconds
        self.last_status = last_status


class VerificationMismatchError(PipelineError):
    """Retrieved content does not match what was uploaded."""

    pass


class MintError(PipelineError):
    """Mint submission or confirmation failed.

    Never retried automatically: the transaction may have landed on-chain.
    """

    pass
