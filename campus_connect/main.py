# campus_connect/main.py

# FastAPI application entrypoint for the Campus Connect batch delivery core.
# Includes health, order, batch and slot routers, and sets up database tables on startup.
# Domain errors (NotFound/Unauthorized/Validation/Conflict) render as {"detail": message}.
# Root endpoint shows available API routes for quick reference.

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from campus_connect.api.health import router as health_router
from campus_connect.api.orders import router as orders_router
from campus_connect.api.batches import router as batches_router
from campus_connect.api.slots import router as slots_router
from campus_connect.db import Base, engine
from campus_connect.errors import DomainError, PendingOrdersError
import campus_connect.models  # important: registers tables

logger = logging.getLogger("campus_connect.api")

app = FastAPI(title="Campus Connect Batch Delivery", version="0.1.0")
app.include_router(health_router, tags=["health"])
app.include_router(orders_router, tags=["orders"])
app.include_router(batches_router, tags=["batches"])
app.include_router(slots_router, tags=["slots"])

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    body = {"detail": exc.message}
    if isinstance(exc, PendingOrdersError):
        body["pending_orders"] = exc.pending
    return JSONResponse(status_code=exc.status_code, content=body)

@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

@app.get("/")
async def root():
    return {
        "status": "ok",
        "see": ["/healthz", "/shops/{shop_id}/next-slot", "/orders", "/vendor/dashboard", "/vendor/batch-slots"],
    }
