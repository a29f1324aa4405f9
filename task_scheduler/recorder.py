"""
Outcome recorders.

Every execution attempt ends in exactly one Outcome, handed to a recorder.
The LogRecorder writes one readable line per outcome; the MemoryRecorder
keeps recent outcomes in memory for inspection.
"""

import logging
import threading
from typing import List, Optional

from task_scheduler.jobs import Outcome, OutcomeStatus

logger = logging.getLogger("task_scheduler.outcomes")


class OutcomeRecorder:
    """Base class for anything that consumes execution outcomes."""

    def record(self, outcome: Outcome):
        raise NotImplementedError


class LogRecorder(OutcomeRecorder):
    """Writes each outcome as a single log line."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.logger = log or logger

    def record(self, outcome: Outcome):
        if outcome.succeeded:
            self.logger.info(f"{outcome.task} - {outcome.detail}")
        else:
            self.logger.error(f"ERROR!: {outcome.task} - {outcome.detail}")


class MemoryRecorder(OutcomeRecorder):
    """
    Keeps outcomes in memory.

    Safe to share between tasks: all access goes through one lock.
    Only the most recent max_entries outcomes are kept.
    """

    def __init__(self, max_entries: int = 1000):
        """
        Initialize memory recorder.

        Args:
            max_entries: Maximum number of outcomes to keep
        """
        self.max_entries = max_entries
        self._outcomes: List[Outcome] = []
        self._lock = threading.Lock()

    def record(self, outcome: Outcome):
        with self._lock:
            self._outcomes.append(outcome)

            # Trim to max entries (keep most recent)
            if len(self._outcomes) > self.max_entries:
                self._outcomes = self._outcomes[-self.max_entries:]

    def outcomes(
        self,
        task: Optional[str] = None,
        status: Optional[OutcomeStatus] = None,
        limit: Optional[int] = None
    ) -> List[Outcome]:
        """
        Get recorded outcomes with optional filters.

        Args:
            task: Filter by task identity
            status: Filter by outcome status
            limit: Maximum number of entries to return (most recent kept)

        Returns:
            List of outcomes in the order they were recorded
        """
        with self._lock:
            results = list(self._outcomes)

        if task:
            results = [o for o in results if o.task == task]
        if status:
            results = [o for o in results if o.status == status]
        if limit:
            results = results[-limit:]

        return results

    def clear(self):
        with self._lock:
            self._outcomes = []

    def __len__(self):
        with self._lock:
            return len(self._outcomes)
