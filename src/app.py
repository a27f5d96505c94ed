"""Carmarket FastAPI application.

Web server that processes Sales commands synchronously via HTTP. Each
request runs inside the sales domain context, with the acting user bound
to every log line it produces.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sales.domain import sales
from sales.utils.logging import bind_actor, clear_context, configure_logging

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# Logging and the domain are set up at module level so uvicorn workers share them.
configure_logging()
sales.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Carmarket API",
    description="Vehicle marketplace: order lifecycle and transaction ledger",
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
    """Push the sales domain context and bind the caller for logging."""
    if not request.url.path.startswith("/orders"):
        # Health check, docs, etc.
        return await call_next(request)

    bind_actor(request.headers.get("x-actor-id", "anonymous"), path=request.url.path)
    try:
        with sales.domain_context():
            return await call_next(request)
    finally:
        clear_context()


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from sales.api import order_router, register_sales_exception_handlers  # noqa: E402

app.include_router(order_router)
register_sales_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"sales": {"name": sales.name}},
        }
    )
