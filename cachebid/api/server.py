"""FastAPI server for the cache bid service.

Routes are organized into helper registration functions, one per surface:
owners (registry and escrow), cycle (evaluate/execute), admin and state.
Caller errors raised by the core are rendered as the standard error
response body with a 4xx status.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.automation import BidRequest
from ..core.errors import CacheBidError, ErrorCode, resource_error, system_error, validation_error
from ..core.service import CacheBidService
from ..runner import AutomationRunner
from .models import (
    AdminRequest,
    ExecuteRequest,
    FundRequest,
    InsertEntryRequest,
    RestoreRequest,
    UpdateEntryRequest,
    UpsertEntryRequest,
)


logger = logging.getLogger(__name__)

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.NOT_AUTHORIZED: 403,
    ErrorCode.PAUSED: 409,
    ErrorCode.ALREADY_EXISTS: 409,
}


def status_for(error: CacheBidError) -> int:
    """HTTP status for a caller error (400 unless mapped)."""
    return _STATUS_BY_CODE.get(error.code, 400)


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(CacheBidError)
    async def handle_cache_bid_error(request: Request, exc: CacheBidError) -> JSONResponse:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code.value, exc.message)
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=validation_error("Invalid request", errors=errors),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=system_error(str(exc)))


def _register_owner_routes(app: FastAPI, service: CacheBidService) -> None:
    """Registry and escrow routes under /api/owners."""

    @app.get("/api/owners")
    async def list_owners(
        offset: int = Query(0, ge=0),
        limit: int = Query(50, ge=0),
    ) -> dict[str, Any]:
        """Bounded page of owners with their entries."""
        page = service.page(offset, limit)
        return {
            "owners": [
                {
                    "owner_id": owner.owner_id,
                    "entries": [entry.to_dict() for entry in owner.entries],
                }
                for owner in page.owners
            ],
            "has_more": page.has_more,
        }

    @app.get("/api/owners/count")
    async def count_owners() -> dict[str, Any]:
        return {"total_owners": service.total_owners()}

    @app.get("/api/owners/{owner_id}/entries")
    async def get_entries(owner_id: str) -> dict[str, Any]:
        return {
            "owner_id": owner_id,
            "entries": [entry.to_dict() for entry in service.entries_of(owner_id)],
        }

    @app.get("/api/owners/{owner_id}/entries/{artifact_id}", response_model=None)
    async def get_entry(owner_id: str, artifact_id: str) -> dict[str, Any] | JSONResponse:
        entry = service.registry.get_entry(owner_id, artifact_id)
        if entry is None:
            return JSONResponse(
                status_code=404,
                content=resource_error(
                    f"{artifact_id} is not registered for {owner_id}",
                    artifact_id=artifact_id,
                ),
            )
        return {"owner_id": owner_id, **entry.to_dict()}

    @app.post("/api/owners/{owner_id}/entries", status_code=201)
    async def insert_entry(owner_id: str, body: InsertEntryRequest) -> dict[str, Any]:
        entry = service.insert(
            owner_id, body.artifact_id, body.ceiling, body.enabled, funding=body.funding,
        )
        return {
            "owner_id": owner_id,
            **entry.to_dict(),
            "balance": service.balance_of(owner_id),
        }

    @app.patch("/api/owners/{owner_id}/entries/{artifact_id}")
    async def update_entry(owner_id: str, artifact_id: str, body: UpdateEntryRequest) -> dict[str, Any]:
        """Update ceiling and enabled. Unknown artifacts are a no-op."""
        updated = service.update(owner_id, artifact_id, body.ceiling, body.enabled)
        return {"owner_id": owner_id, "artifact_id": artifact_id, "updated": updated}

    @app.put("/api/owners/{owner_id}/entries/{artifact_id}")
    async def upsert_entry(owner_id: str, artifact_id: str, body: UpsertEntryRequest) -> dict[str, Any]:
        entry = service.insert_or_update(
            owner_id, artifact_id, body.ceiling, body.enabled, funding=body.funding,
        )
        return {
            "owner_id": owner_id,
            **entry.to_dict(),
            "balance": service.balance_of(owner_id),
        }

    @app.delete("/api/owners/{owner_id}/entries/{artifact_id}")
    async def remove_entry(owner_id: str, artifact_id: str) -> dict[str, Any]:
        removed = service.remove(owner_id, artifact_id)
        return {"owner_id": owner_id, "removed": [removed.to_dict()]}

    @app.delete("/api/owners/{owner_id}/entries")
    async def remove_all_entries(owner_id: str) -> dict[str, Any]:
        removed = service.remove_all(owner_id)
        return {"owner_id": owner_id, "removed": [entry.to_dict() for entry in removed]}

    @app.get("/api/owners/{owner_id}/balance")
    async def get_balance(owner_id: str) -> dict[str, Any]:
        return {"owner_id": owner_id, "balance": service.balance_of(owner_id)}

    @app.post("/api/owners/{owner_id}/fund")
    async def fund(owner_id: str, body: FundRequest) -> dict[str, Any]:
        return {"owner_id": owner_id, "balance": service.fund(owner_id, body.amount)}

    @app.post("/api/owners/{owner_id}/withdraw")
    async def withdraw(owner_id: str) -> dict[str, Any]:
        amount = service.withdraw(owner_id)
        return {"owner_id": owner_id, "withdrawn": amount, "balance": service.balance_of(owner_id)}


def _register_cycle_routes(app: FastAPI, service: CacheBidService) -> None:
    """Automation routes under /api/cycle."""

    @app.post("/api/cycle/evaluate")
    async def evaluate() -> dict[str, Any]:
        """Read-only: the worklist execute() would act on now."""
        return service.evaluate().to_dict()

    @app.post("/api/cycle/execute")
    async def execute(body: ExecuteRequest) -> dict[str, Any]:
        requests = [BidRequest(r.owner_id, r.artifact_id) for r in body.requests]
        return service.execute(requests).to_dict()

    @app.post("/api/cycle/run")
    async def run_cycle() -> dict[str, Any]:
        return service.run_cycle().to_dict()


def _register_admin_routes(app: FastAPI, service: CacheBidService) -> None:
    """Pause control and runner status."""

    @app.post("/api/admin/pause")
    async def pause(body: AdminRequest) -> dict[str, Any]:
        changed = service.pause(body.caller_id)
        return {"status": "paused" if changed else "already_paused"}

    @app.post("/api/admin/unpause")
    async def unpause(body: AdminRequest) -> dict[str, Any]:
        changed = service.unpause(body.caller_id)
        return {"status": "running" if changed else "already_running"}

    @app.get("/api/runner/status")
    async def runner_status() -> dict[str, Any]:
        runner = AutomationRunner.get_active()
        if runner is None:
            return {"running": False, "reason": "No active runner"}
        return runner.get_status()


def _register_state_routes(app: FastAPI, service: CacheBidService) -> None:

    @app.get("/api/state")
    async def get_state() -> dict[str, Any]:
        return dict(service.state_summary())

    @app.get("/api/events")
    async def get_events(
        limit: int | None = Query(None, ge=0),
        event_type: str | None = None,
    ) -> dict[str, Any]:
        """Most recent events, oldest first."""
        if event_type is not None:
            events = service.events.events_of_type(event_type)
            if limit is not None:
                events = events[-limit:] if limit else []
        else:
            events = service.events.read_recent(limit)
        return {"events": events, "count": len(events)}

    @app.get("/api/snapshot")
    async def get_snapshot() -> dict[str, Any]:
        return dict(service.snapshot())

    @app.post("/api/restore")
    async def restore(body: RestoreRequest) -> dict[str, Any]:
        """Replace all entries and balances. Admin only."""
        service.restore(body.model_dump(exclude={"caller_id"}), body.caller_id)
        return dict(service.state_summary())


def create_app(
    service: CacheBidService,
    runner: AutomationRunner | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application around a service.

    Args:
        service: The service every route operates on
        runner: If given, runs in the background for the lifetime of the app
    """
    app = FastAPI(
        title="Cache Bid Automation",
        description="Owner registry, escrow and automated cache bidding",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = service
    app.state.runner = runner

    if runner is not None:
        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
            """Start the runner on startup, stop it on shutdown."""
            task = asyncio.create_task(runner.run())
            yield
            runner.stop()
            await task

        app.router.lifespan_context = lifespan

    _register_error_handlers(app)
    _register_owner_routes(app, service)
    _register_cycle_routes(app, service)
    _register_admin_routes(app, service)
    _register_state_routes(app, service)
    return app


def run_server(
    service: CacheBidService,
    runner: AutomationRunner | None = None,
    host: str = "127.0.0.1",
    port: int = 8080,
) -> None:
    """Run the API server (blocking)."""
    import uvicorn

    app = create_app(service, runner=runner)
    uvicorn.run(app, host=host, port=port)
