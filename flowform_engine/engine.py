"""Engine facade – public entry-point used by the REST API and the session walker."""

from __future__ import annotations

from typing import Any

from loguru import logger

from .logging import NAVIGATION_CALLS_TOTAL, NAVIGATION_DURATION, NAVIGATION_ERRORS_TOTAL
from .models import FormGraph, NextBlockDecision
from .traversal import resolve


def next_block(graph: FormGraph, block_id: str, answer: Any) -> NextBlockDecision:
    """Resolve the block that follows ``block_id`` in the ``graph`` snapshot.

    A target id that is not a block of the snapshot is returned as-is; the
    caller's block lookup is responsible for detecting dangling targets.
    """

    logger.info("Resolving next block | form={} block={}", graph.form_id, block_id)

    try:
        with NAVIGATION_DURATION.time():
            decision = resolve(graph.connection_for(block_id), answer)
    except Exception:
        NAVIGATION_ERRORS_TOTAL.inc()
        raise

    NAVIGATION_CALLS_TOTAL.labels(outcome=decision.kind).inc()
    if decision.block_id is not None and graph.blocks and graph.block(decision.block_id) is None:
        logger.warning(
            "Block {} resolved to dangling target {} (form={})",
            block_id,
            decision.block_id,
            graph.form_id,
        )

    logger.info(
        "Next block | form={} from={} kind={} to={} rule={}",
        graph.form_id,
        block_id,
        decision.kind,
        decision.block_id,
        decision.rule_id,
    )
    return decision
