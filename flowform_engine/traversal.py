"""Rule matching and next-block resolution.

Both functions are pure: they read the Connection handed to them and the
respondent's answer, hold no state, and return the same result for the same
inputs, so a respondent may reload or retry a step safely.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from loguru import logger

from .evaluators import evaluate_group
from .models import Connection, NextBlockDecision, Rule

# ---------------------------------------------------------------------------
# Rule matcher
# ---------------------------------------------------------------------------


def match_rule(rules: Sequence[Rule], answer: Any) -> Optional[Rule]:
    """Return the first rule (in authored order) whose condition group matches."""

    for index, rule in enumerate(rules):
        if evaluate_group(rule.condition_group, answer):
            logger.debug("Rule {} (position {}) matched -> {}", rule.id, index, rule.target_block_id)
            return rule
    return None


def match(rules: Sequence[Rule], answer: Any) -> Optional[str]:
    """Return the target block id of the first matching rule, or None."""

    rule = match_rule(rules, answer)
    return rule.target_block_id if rule is not None else None


# ---------------------------------------------------------------------------
# Navigation resolver
# ---------------------------------------------------------------------------


def resolve(connection: Optional[Connection], answer: Any) -> NextBlockDecision:
    """Decide which block follows the one the respondent just completed.

    Parameters
    ----------
    connection : Connection | None
        Outgoing connection of the current block, if it has one.
    answer : Any
        The respondent's answer for the current block.

    Returns
    -------
    NextBlockDecision
        ``target`` with the first matching rule's block, else the default
        target; ``end`` when there is no connection or no default.
    """

    if connection is None:
        return NextBlockDecision.end()

    rule = match_rule(connection.rules, answer)
    if rule is not None:
        return NextBlockDecision.target(rule.target_block_id, rule_id=rule.id)

    if connection.default_target_id is not None:
        logger.debug(
            "No rule matched on connection {} – default target {}",
            connection.id,
            connection.default_target_id,
        )
        return NextBlockDecision.target(connection.default_target_id)

    return NextBlockDecision.end()
