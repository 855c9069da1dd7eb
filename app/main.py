"""FastAPI application instance and exception handlers."""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.ai_chatbot.router import router as query_router
from app.core import get_logger
from app.quickbooks import ReauthRequiredError, TransientUpstreamError
from app.routers import company_router, dashboard_router

LOGGER = get_logger(__name__)


async def reauth_required_handler(request: Request, exc: ReauthRequiredError) -> JSONResponse:
    LOGGER.info("Reauthorization required for %s", request.url.path)
    return JSONResponse(
        status_code=401,
        content={
            "error": ReauthRequiredError.code,
            "message": "QuickBooks authorization expired. Please reconnect.",
            "connected": False,
        },
    )


async def upstream_unavailable_handler(
    request: Request, exc: TransientUpstreamError
) -> JSONResponse:
    LOGGER.warning("Upstream unavailable for %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=502,
        content={"error": TransientUpstreamError.code, "detail": exc.message},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(title="Ledger Dashboard API", version="0.1.0")
    app.add_exception_handler(ReauthRequiredError, reauth_required_handler)
    app.add_exception_handler(TransientUpstreamError, upstream_unavailable_handler)

    app.include_router(dashboard_router)
    app.include_router(company_router)
    app.include_router(query_router)

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    LOGGER.info("FastAPI application initialised")
    return app


app = create_app()
