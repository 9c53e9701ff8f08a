"""Status HTTP surface for external monitors.

FastAPI app with two read-only endpoints. Handlers answer from in-memory
state only, so they stay responsive while a cycle is waiting on the RPC
node. Served by uvicorn inside the orchestrator's event loop.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from yieldkeeper.core.status import StatusReporter
from yieldkeeper.utils.logger import get_logger

logger = get_logger("web")


# ---------------------------------------------------------------------------
# Shared state, injected by orchestrator at init
# ---------------------------------------------------------------------------


class DashboardState:
    """Shared state injected by orchestrator."""

    reporter: StatusReporter | None = None


state = DashboardState()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(title="Yield Keeper", docs_url=None, redoc_url=None)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health() -> dict[str, Any]:
    """Liveness probe."""
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


@app.get("/api/status")
async def api_status() -> dict[str, Any]:
    """Last/next cycle timing and whether a cycle is running."""
    if state.reporter is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Keeper not started",
        )
    return state.reporter.report()


def create_app(reporter: StatusReporter) -> FastAPI:
    """Factory function for orchestrator integration.

    Called by main.py to inject the status reporter into dashboard state.
    """
    state.reporter = reporter
    logger.debug("web_app_bound")
    return app
