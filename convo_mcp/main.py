"""
convo_mcp/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Exposes the MCP tools over streamable HTTP (/mcp) and SSE (/mcp/sse)
- Bearer-token guard and CORS for the MCP endpoints
- Manages application lifecycle (startup/shutdown)
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from contextlib import asynccontextmanager
import time

from convo_mcp import __version__
from convo_mcp.core.config import settings, validate_settings
from convo_mcp.core.errors import add_exception_handlers
from convo_mcp.core.logging import setup_logging, get_logger
from convo_mcp.core.security import BearerAuthMiddleware
from convo_mcp.db.database import (
    connect_to_database,
    close_database_connection,
    check_database_health,
)
from convo_mcp.services.sso_service import close_sso_client
from convo_mcp.api.tools import mcp

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

VERSION = __version__


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("🚀 Starting MCP agent backend...")

    try:
        logger.info("Validating configuration...")
        validate_settings()
        logger.info("✅ Configuration validated")

        logger.info("Connecting to database...")
        database = await connect_to_database()
        await database.create_schema()
        logger.info("✅ Database connected and schema ensured")

        is_healthy = await check_database_health()
        if not is_healthy:
            logger.warning("⚠️ Database health check failed during startup")
        else:
            logger.info("✅ Database health check passed")

        if not settings.sso_configured:
            logger.warning("⚠️ SSO not configured; SSO tools will return exists=false")
        if not settings.MCP_BEARER_TOKEN:
            logger.warning("⚠️ MCP_BEARER_TOKEN is empty; /mcp endpoints are open")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    # The streamable HTTP transport needs its session manager running
    async with mcp.session_manager.run():
        logger.info("🎉 MCP agent backend started successfully!")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Health: http://localhost:{settings.PORT}/health")
        logger.info(f"MCP (streamable HTTP): http://localhost:{settings.PORT}/mcp")
        logger.info(f"MCP (SSE): http://localhost:{settings.PORT}/mcp/sse")
        yield

    logger.info("🛑 Shutting down MCP agent backend...")

    try:
        await close_sso_client()
        logger.info("✅ SSO client closed")

        await close_database_connection()
        logger.info("✅ Database connection closed")

        logger.info("👋 MCP agent backend shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


class ProcessTimeMiddleware:
    """
    Adds X-Process-Time to responses and logs slow requests.
    Plain ASGI so SSE streams on /mcp are not buffered.
    """

    def __init__(self, app: ASGIApp, slow_threshold: float = 5.0):
        self.app = app
        self.slow_threshold = slow_threshold

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        # Streams stay open; timing them is meaningless
        if scope["type"] != "http" or scope.get("path", "").startswith("/mcp"):
            await self.app(scope, receive, send)
            return

        start_time = time.time()

        async def send_with_timing(message: Message):
            if message["type"] == "http.response.start":
                process_time = time.time() - start_time
                MutableHeaders(scope=message).append("X-Process-Time", str(process_time))
                if process_time > self.slow_threshold:
                    logger.warning(
                        f"Slow request detected: {scope.get('method')} {scope.get('path')}",
                        extra={"process_time": process_time}
                    )
            await send(message)

        await self.app(scope, receive, send_with_timing)


def create_app() -> FastAPI:
    """
    Builds the FastAPI application with the MCP transports attached.
    """
    app = FastAPI(
        title="MCP Agent Backend",
        description="Conversation, consent and state backend exposed as MCP tools",
        version=VERSION,
        lifespan=lifespan,
        debug=settings.DEBUG,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    add_exception_handlers(app)

    # MCP transports: POST/GET/DELETE /mcp (streamable HTTP),
    # GET /mcp/sse + POST /mcp/messages/?session_id=... (SSE)
    app.router.routes.extend(mcp.streamable_http_app().routes)
    app.router.routes.extend(mcp.sse_app().routes)

    # Last added runs first: CORS -> auth -> timing -> routes.
    # Auth runs inside CORS so rejected responses still carry CORS headers
    app.add_middleware(ProcessTimeMiddleware)
    app.add_middleware(BearerAuthMiddleware, token=settings.MCP_BEARER_TOKEN)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Mcp-Session-Id", "Mcp-Protocol-Version"],
        expose_headers=["Mcp-Session-Id"],
    )

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint - basic info."""
        return {
            "name": settings.MCP_SERVER_NAME,
            "version": VERSION,
            "status": "running",
            "environment": settings.ENVIRONMENT,
            "endpoints": {
                "health": "/health",
                "mcp": "/mcp",
                "sse": "/mcp/sse",
            },
        }

    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Liveness probe - the process is up.
        """
        return {"ok": True}

    @app.get("/ready", tags=["Health"])
    async def readiness_check():
        """
        Readiness probe - indicates if app is ready to receive traffic.
        """
        if await check_database_health():
            return {"ok": True, "database": "healthy"}
        return JSONResponse(
            status_code=503,
            content={"ok": False, "database": "unavailable"}
        )

    return app


app = create_app()


def run():
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "convo_mcp.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development and settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
