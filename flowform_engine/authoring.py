"""Orphan-confirmation flow and optimistic check-then-apply for graph edits.

The editor never applies an orphan-producing edit eagerly. It holds the
edit as a :class:`ConnectionMutation` value while the alert is open and
applies it only on confirmation, against the same snapshot the check ran on.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from . import config
from .errors import ConfirmationPendingError, NoPendingChangeError, StaleSnapshotError
from .graph import apply_mutation, check_mutation
from .logging import ORPHAN_ALERTS_TOTAL, SNAPSHOT_CONFLICTS_TOTAL
from .models import ConnectionMutation, FormGraph, OrphanDetails


class EditorState(str, Enum):
    IDLE = "idle"
    PENDING_CONFIRMATION = "pending_confirmation"


class EditOutcome(str, Enum):
    APPLIED = "applied"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PendingChange:
    mutation: ConnectionMutation
    details: OrphanDetails
    base_version: int


@dataclass(frozen=True)
class ProposalResult:
    """What happened to a proposed edit.

    ``outcome`` is None while the edit waits for confirmation.
    """

    state: EditorState
    graph: FormGraph
    outcome: Optional[EditOutcome] = None
    details: Optional[OrphanDetails] = None

    @property
    def needs_confirmation(self) -> bool:
        return self.state is EditorState.PENDING_CONFIRMATION


class WorkflowEditor:
    """Single source of truth for one form's graph on the authoring side.

    States: ``idle`` -> ``pending_confirmation`` -> (applied | cancelled)
    -> ``idle``. While an alert is pending no other edit may be proposed.
    """

    def __init__(self, graph: FormGraph):
        self._graph = graph
        self._pending: Optional[PendingChange] = None
        self.last_outcome: Optional[EditOutcome] = None

    @property
    def graph(self) -> FormGraph:
        return self._graph

    @property
    def state(self) -> EditorState:
        if self._pending is not None:
            return EditorState.PENDING_CONFIRMATION
        return EditorState.IDLE

    @property
    def pending(self) -> Optional[OrphanDetails]:
        return self._pending.details if self._pending is not None else None

    def _ensure_idle(self) -> None:
        if self._pending is not None:
            raise ConfirmationPendingError(
                f"Orphan alert pending for connection {self._pending.details.connection_id}"
            )

    def propose(self, mutation: ConnectionMutation) -> ProposalResult:
        """Apply ``mutation`` unless it would orphan a block; then ask first."""

        self._ensure_idle()
        details = check_mutation(self._graph, mutation)
        if details is None:
            self._graph = apply_mutation(self._graph, mutation)
            self.last_outcome = EditOutcome.APPLIED
            return ProposalResult(EditorState.IDLE, self._graph, outcome=EditOutcome.APPLIED)

        ORPHAN_ALERTS_TOTAL.inc()
        self._pending = PendingChange(mutation, details, self._graph.version)
        logger.info(
            "Orphan alert | connection={} old={} new={}",
            details.connection_id,
            details.old_target_id,
            details.new_target_id,
        )
        return ProposalResult(EditorState.PENDING_CONFIRMATION, self._graph, details=details)

    def confirm(self) -> ProposalResult:
        """'Proceed Anyway': apply the pending edit despite the orphan."""

        if self._pending is None:
            raise NoPendingChangeError("No pending change to confirm")
        pending = self._pending
        if pending.base_version != self._graph.version:
            self._pending = None
            SNAPSHOT_CONFLICTS_TOTAL.inc()
            raise StaleSnapshotError(
                f"Snapshot moved from version {pending.base_version} to {self._graph.version}"
            )
        self._graph = apply_mutation(self._graph, pending.mutation)
        self._pending = None
        self.last_outcome = EditOutcome.APPLIED
        logger.info("Orphan alert confirmed | block {} orphaned", pending.details.old_target_id)
        return ProposalResult(
            EditorState.IDLE, self._graph, outcome=EditOutcome.APPLIED, details=pending.details
        )

    def cancel(self) -> ProposalResult:
        """Discard the pending edit; the graph keeps its prior state."""

        if self._pending is None:
            raise NoPendingChangeError("No pending change to cancel")
        details = self._pending.details
        self._pending = None
        self.last_outcome = EditOutcome.CANCELLED
        logger.info("Orphan alert cancelled | connection {}", details.connection_id)
        return ProposalResult(
            EditorState.IDLE, self._graph, outcome=EditOutcome.CANCELLED, details=details
        )

    def replace_snapshot(self, graph: FormGraph) -> None:
        """Swap in a freshly loaded snapshot (e.g. after another author saved).

        A pending confirmation stays open but will fail as stale if the
        version changed.
        """

        self._graph = graph


# ---------------------------------------------------------------------------
# Optimistic concurrency against caller-owned storage
# ---------------------------------------------------------------------------

LoadSnapshot = Callable[[], FormGraph]
SaveSnapshot = Callable[[FormGraph, int], None]


def apply_with_retry(
    load: LoadSnapshot,
    save: SaveSnapshot,
    mutation: ConnectionMutation,
    *,
    confirm_orphans: bool = False,
    max_attempts: Optional[int] = None,
) -> ProposalResult:
    """Check and apply ``mutation`` against the latest stored snapshot.

    Parameters
    ----------
    load : Callable[[], FormGraph]
        Returns the latest snapshot from storage.
    save : Callable[[FormGraph, int], None]
        Persists the new snapshot if storage is still at the given version,
        otherwise raises :class:`StaleSnapshotError`.
    mutation : ConnectionMutation
        The edit to apply.
    confirm_orphans : bool
        Apply even if the edit orphans a block (the author already chose
        "Proceed Anyway").

    Raises
    ------
    StaleSnapshotError
        When every attempt hit a concurrent edit.
    """

    attempts = max_attempts or config.CONFLICT_MAX_RETRIES

    @retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential_jitter(initial=0.05, max=config.CONFLICT_RETRY_MAX_WAIT),
        retry=retry_if_exception_type(StaleSnapshotError),
    )
    def _attempt() -> ProposalResult:
        snapshot = load()
        details = check_mutation(snapshot, mutation)
        if details is not None and not confirm_orphans:
            ORPHAN_ALERTS_TOTAL.inc()
            return ProposalResult(EditorState.PENDING_CONFIRMATION, snapshot, details=details)

        updated = apply_mutation(snapshot, mutation)
        try:
            save(updated, snapshot.version)
        except StaleSnapshotError:
            SNAPSHOT_CONFLICTS_TOTAL.inc()
            logger.warning(
                "Stale snapshot for form {} at version {} – retrying",
                snapshot.form_id,
                snapshot.version,
            )
            raise
        return ProposalResult(EditorState.IDLE, updated, outcome=EditOutcome.APPLIED, details=details)

    return _attempt()
