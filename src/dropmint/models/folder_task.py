"""FolderTask entity - one candidate NFT folder with lifecycle status tracking."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class FolderState(str, Enum):
    """Folder pipeline lifecycle status."""

    DISCOVERED = "discovered"
    DEBOUNCING = "debouncing"
    LOADING = "loading"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    MINTING = "minting"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({FolderState.COMPLETED, FolderState.FAILED})
IN_FLIGHT_STATES = frozenset(
    {FolderState.LOADING, FolderState.VALIDATING, FolderState.UPLOADING, FolderState.MINTING}
)


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid folder state transition."""

    pass


@dataclass
class FolderTask:
    """Unit of work for one folder in the inbox."""

    name: str
    path: Path
    discovered_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    state: FolderState = FolderState.DISCOVERED
    error: Optional[str] = None
    # Set when files change while the folder is in flight
    dirty: bool = False

    @classmethod
    def for_path(cls, path: Path) -> "FolderTask":
        return cls(name=path.name, path=path)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_in_flight(self) -> bool:
        return self.state in IN_FLIGHT_STATES

    def _transition(self, target: FolderState, *allowed: FolderState) -> None:
        if self.state not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise InvalidStateTransition(
                f"Cannot mark {target.value} from {self.state.value}. "
                f"Folder {self.name} must be in {expected} state."
            )
        self.state = target

    def mark_debouncing(self) -> None:
        """Transition from discovered to debouncing (or restart debouncing).

        Raises:
            InvalidStateTransition: If the folder is in flight or terminal
        """
        self._transition(FolderState.DEBOUNCING, FolderState.DISCOVERED, FolderState.DEBOUNCING)

    def mark_loading(self) -> None:
        self._transition(FolderState.LOADING, FolderState.DISCOVERED, FolderState.DEBOUNCING)

    def mark_validating(self) -> None:
        self._transition(FolderState.VALIDATING, FolderState.LOADING)

    def mark_uploading(self) -> None:
        self._transition(FolderState.UPLOADING, FolderState.VALIDATING)

    def mark_minting(self) -> None:
        self._transition(FolderState.MINTING, FolderState.UPLOADING)

    def mark_completed(self) -> None:
        self._transition(FolderState.COMPLETED, FolderState.MINTING)

    def mark_failed(self, error: str) -> None:
        """Transition from any in-flight state to failed.

        Args:
            error: Underlying cause, kept for logging

        Raises:
            InvalidStateTransition: If the folder is not in flight
        """
        self._transition(
            FolderState.FAILED,
            FolderState.LOADING,
            FolderState.VALIDATING,
            FolderState.UPLOADING,
            FolderState.MINTING,
        )
        self.error = error
