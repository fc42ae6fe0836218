"""Dispatch FastAPI application for one delivery agent.

Builds the agent's ``DispatchRuntime`` from the environment at startup and
runs its status poller for the lifetime of the server.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dispatch.config import DispatchSettings
from dispatch.domain import dispatch
from dispatch.runtime import DispatchRuntime
from dispatch.utils.logging import configure_logging

# PROTEAN_ENV selects the domain.toml overlay (memory by default, PostgreSQL in production)
configure_logging()
dispatch.init()


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = DispatchRuntime(DispatchSettings.from_env())
    app.state.runtime = runtime
    await runtime.start()
    try:
        yield
    finally:
        await runtime.stop()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Dispatch API",
    description="Delivery agent offers, deliveries, proof of delivery and earnings",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the dispatch domain context for each request."""
    if request.url.path.startswith("/dispatch"):
        with dispatch.domain_context():
            return await call_next(request)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from dispatch.api import router as dispatch_router  # noqa: E402

app.include_router(dispatch_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    runtime = app.state.runtime
    return JSONResponse(
        content={
            "status": "ok",
            "domain": dispatch.name,
            "agent_id": runtime.session.agent_id,
            "online": runtime.session.online,
            "poller_running": runtime.poller.running,
        }
    )
