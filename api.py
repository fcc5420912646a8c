"""HTTP API surface for the Flowform navigation engine.

Stateless: every request carries the graph snapshot it operates on, and
callers own storage.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, status
from loguru import logger
from pydantic import BaseModel, Field

from flowform_engine import next_block
from flowform_engine.errors import FlowError
from flowform_engine.graph import check_mutation, compute_block_order
from flowform_engine.logging import configure_logging, trace_id_var
from flowform_engine.mapping import EdgeRow, rows_to_connections
from flowform_engine.models import ConnectionMutation, FormGraph

configure_logging()

app = FastAPI(title="Flowform Navigation Engine", version="1.0.0")


class NextBlockRequest(BaseModel):
    graph: FormGraph
    blockId: str = Field(..., description="Block the respondent just completed")
    answer: Any = None


class OrphanCheckRequest(BaseModel):
    graph: FormGraph
    mutation: ConnectionMutation


class BlockOrderRequest(BaseModel):
    graph: FormGraph


class RowsRequest(BaseModel):
    rows: List[EdgeRow]


def _handle(name: str, fn: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Run ``fn`` under a fresh trace id and map engine errors to HTTP errors."""

    trace_id = str(uuid.uuid4())
    trace_id_var.set(trace_id)
    logger.bind(traceId=trace_id).info("Incoming request: {}", name)

    try:
        response = fn()
        response["traceId"] = trace_id
        return response
    except FlowError as exc:
        logger.warning("Engine domain error: {}", exc, traceId=trace_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "errorType": exc.__class__.__name__,
                "message": str(exc),
                "traceId": trace_id,
            },
        )
    except Exception as exc:
        logger.exception("Engine error: {}", exc, traceId=trace_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "errorType": exc.__class__.__name__,
                "message": str(exc),
                "traceId": trace_id,
            },
        )
    finally:
        trace_id_var.set(None)


@app.post("/v1/api/next_block")
async def next_block_route(payload: NextBlockRequest):
    """Resolve the block that follows ``blockId`` for the given answer."""

    def run() -> Dict[str, Any]:
        decision = next_block(payload.graph, payload.blockId, payload.answer)
        return {"decision": decision.model_dump()}

    return _handle("next_block", run)


@app.post("/v1/api/orphan_check")
async def orphan_check(payload: OrphanCheckRequest):
    def run() -> Dict[str, Any]:
        details = check_mutation(payload.graph, payload.mutation)
        return {
            "orphaned": details is not None,
            "details": details.model_dump() if details is not None else None,
        }

    return _handle("orphan_check", run)


@app.post("/v1/api/block_order")
async def block_order(payload: BlockOrderRequest):
    def run() -> Dict[str, Any]:
        order = compute_block_order(payload.graph)
        return {
            "order": [
                {
                    "blockId": item.block_id,
                    "orderIndex": item.order_index,
                    "disconnected": item.disconnected,
                }
                for item in order
            ]
        }

    return _handle("block_order", run)


@app.post("/v1/api/connections/from_rows")
async def connections_from_rows(payload: RowsRequest, strict: Optional[bool] = False):
    def run() -> Dict[str, Any]:
        connections = rows_to_connections(payload.rows, strict=bool(strict))
        return {
            "connections": {
                source: connection.model_dump() for source, connection in connections.items()
            }
        }

    return _handle("connections_from_rows", run)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
