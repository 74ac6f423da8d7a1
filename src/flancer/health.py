"""Liveness and readiness probes.

- ``GET /health`` answers 200 while the process is up.
- ``GET /ready`` answers 200 only when the record store and the audit
  database both respond; otherwise 503 with the failing check named.  The
  number of notifications still being delivered is reported for operators
  but never fails readiness.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


async def _check_store(services: dict[str, Any]) -> None:
    await services["store"].ping()


async def _check_audit_db(services: dict[str, Any]) -> None:
    await asyncio.to_thread(services["audit_conn"].execute, "SELECT 1")


READINESS_CHECKS: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
    "store": _check_store,
    "audit_db": _check_audit_db,
}


async def run_readiness_checks(services: dict[str, Any]) -> dict[str, str]:
    """Run every readiness check and return ``{name: "ok" | "fail"}``."""
    results: dict[str, str] = {}
    for name, check in READINESS_CHECKS.items():
        try:
            await check(services)
        except Exception as exc:
            # Missing services surface here as KeyError/AttributeError
            logger.warning("Readiness check failed", check=name, error=repr(exc))
            results[name] = "fail"
        else:
            results[name] = "ok"
    return results


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` on *app*."""

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        services: dict[str, Any] = request.app.state.services
        checks = await run_readiness_checks(services)
        all_ok = all(result == "ok" for result in checks.values())

        body: dict[str, Any] = {"status": "ready" if all_ok else "not_ready", "checks": checks}
        dispatcher = services.get("dispatcher")
        if dispatcher is not None:
            body["pending_notifications"] = dispatcher.pending
        return JSONResponse(content=body, status_code=200 if all_ok else 503)
