"""Per-scan run context.

A :class:`ScanContext` is created by the caller for each scan and passed
through every stage. It carries progress reporting, cooperative
cancellation, and the diagnostics collected along the way, so nothing
about a run lives in module-level state.
"""

import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from receipt_scanner.errors import ScanCancelled
from receipt_scanner.utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, str], None]


@dataclass
class EngineAttempt:
    """Diagnostic record of one OCR pass."""

    engine: str
    strategy: str
    confidence: float | None
    error: str | None = None


@dataclass
class ScanContext:
    """Caller-owned state for a single receipt scan.

    Args:
        on_progress: Optional callback receiving ``(percent, stage)``.
        cancel_event: Event that, once set, aborts the scan at the next
            stage boundary.
    """

    on_progress: ProgressCallback | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    adjustments: list[str] = field(default_factory=list)
    engine_attempts: list[EngineAttempt] = field(default_factory=list)
    progress: int = 0
    stage: str = "pending"

    def report(self, percent: int, stage: str) -> None:
        """Record progress and forward it to the callback, if any."""
        self.progress = max(self.progress, min(100, percent))
        self.stage = stage
        logger.debug("[%s] %d%% %s", self.run_id, self.progress, stage)
        if self.on_progress is not None:
            self.on_progress(self.progress, stage)

    def cancel(self) -> None:
        """Request cancellation of the scan."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def check_cancelled(self) -> None:
        """Raise :class:`ScanCancelled` if cancellation was requested.

        Raises:
            ScanCancelled: If :meth:`cancel` has been called.
        """
        if self.cancel_event.is_set():
            logger.info("[%s] Scan cancelled during %s", self.run_id, self.stage)
            raise ScanCancelled(f"Scan cancelled during {self.stage}")
