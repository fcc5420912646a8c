"""Respondent-side walk over one form snapshot."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger

from .engine import next_block
from .errors import FlowError
from .models import FormGraph, NextBlockDecision


class NavigationSession:
    """Tracks where one respondent is in a form and how they got there.

    The session never mutates the graph. ``history`` holds the visited block
    ids (start first); ``back()`` walks that history rather than the graph,
    so it always returns the respondent to the block they actually came from.
    """

    def __init__(self, graph: FormGraph, start_block_id: Optional[str] = None):
        start = start_block_id or graph.start_block_id
        if start is None:
            raise FlowError("A navigation session needs a start block")
        self.graph = graph
        self._start = start
        self._history: List[str] = [start]
        self._path: List[str] = []
        self.answers: Dict[str, Any] = {}
        self.completed = False

    @property
    def current_block_id(self) -> str:
        return self._history[-1]

    @property
    def history(self) -> List[str]:
        return list(self._history)

    @property
    def path(self) -> List[str]:
        return list(self._path)

    def submit(self, answer: Any) -> NextBlockDecision:
        if self.completed:
            raise FlowError("Session already completed")

        block_id = self.current_block_id
        self.answers[block_id] = answer
        decision = next_block(self.graph, block_id, answer)
        if decision.is_end:
            self.completed = True
            logger.info("Session completed at block {}", block_id)
            return decision

        via = f"rule {decision.rule_id}" if decision.rule_id else "default"
        self._path.append(f"{block_id} -> {decision.block_id} ({via})")
        self._history.append(decision.block_id)
        return decision

    def back(self) -> bool:
        """Return to the previous block; False when already at the first one."""

        if len(self._history) <= 1:
            return False
        left = self._history.pop()
        self._path.pop()
        self.answers.pop(left, None)
        self.completed = False
        logger.debug("Back from {} to {}", left, self.current_block_id)
        return True

    def reset(self) -> None:
        self._history = [self._start]
        self._path = []
        self.answers = {}
        self.completed = False
