"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from broadcast_gateway.api.admin import router as admin_router
from broadcast_gateway.api.whatsapp import router as whatsapp_router
from broadcast_gateway.app_logging import configure_logging
from broadcast_gateway.containers import AppContainer
from broadcast_gateway.domain.errors import GatewayError


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        if state_container.settings.resume_on_startup:
            try:
                resumed = (
                    await state_container.pairing_service.resume_active_sessions()
                )
                logger.info("Resumed stored sessions", extra={"count": resumed})
            except Exception:
                logger.exception("Failed to resume stored sessions")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(whatsapp_router)
    app.include_router(admin_router)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(
        request: Request, exc: GatewayError
    ) -> JSONResponse:
        """Render typed gateway errors as JSON."""
        if exc.status_code >= 500:  # noqa: PLR2004
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "error": type(exc).__name__},
            )
        content: dict[str, object] = {"error": exc.message}
        if exc.detail and exc.detail != exc.message:
            content["details"] = exc.detail
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
