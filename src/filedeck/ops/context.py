"""Per-operation cancellation and progress handle."""

from __future__ import annotations

import threading
import time
import uuid

from filedeck.core.errors import OperationCancelledError
from filedeck.core.logging import get_logger
from filedeck.vfs.types import ProgressSink

log = get_logger(__name__)


class OperationContext:
    """Created for one operation call and never shared between calls.

    The cancel flag may be set from any thread; it is polled between discrete
    steps, so cancellation takes effect at the next poll point. The progress
    sink must not throw: failures are logged and ignored.
    """

    def __init__(
        self,
        operation_id: str | None = None,
        *,
        progress: ProgressSink | None = None,
        yield_seconds: float = 0.0,
    ) -> None:
        self.id = operation_id or uuid.uuid4().hex
        self._progress = progress
        self._yield_seconds = max(0.0, float(yield_seconds))
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise OperationCancelledError()

    def report(self, current: int, total: int, label: str) -> None:
        if self._progress is None:
            return
        try:
            self._progress(current, total, label)
        except Exception as e:
            log.warning(f"progress sink failed for operation {self.id}: {e}")

    def pause(self) -> None:
        if self._yield_seconds > 0:
            time.sleep(self._yield_seconds)
