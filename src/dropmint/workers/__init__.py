"""Long-running pipeline components."""

from dropmint.workers.pipeline_controller import PipelineController
from dropmint.workers.scheduler import DebounceScheduler
from dropmint.workers.watcher import InboxEventHandler, InboxWatcher

__all__ = [
    "DebounceScheduler",
    "InboxEventHandler",
    "InboxWatcher",
    "PipelineController",
]
