# Standard library imports
import contextlib
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

# Third-party imports
import httpx
from dotenv import load_dotenv
from fastapi import FastAPI

# Local imports
from auth.oauth2 import CredentialRefresher
from auth.resolver import CredentialResolver
from auth.token_cache import TokenCache
from config import Settings, get_settings
from mcp_tools import SERVER_NAME, create_mcp_server
from routes.admin_routes import router as admin_router
from services.send_pacer import SendPacer
from services.tweet_service import TweetService

# Load .env before settings are first read
load_dotenv()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Log to the console, and to a daily rotated file when LOG_DIR is set."""
    handlers = [logging.StreamHandler()]

    if settings.LOG_DIR:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_dir / f"{SERVER_NAME}.log",
            when="midnight",
            backupCount=14,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def create_app(
    settings: Optional[Settings] = None,
    token_cache: Optional[TokenCache] = None,
    send_pacer: Optional[SendPacer] = None,
) -> FastAPI:
    """
    Build the HTTP application: the MCP endpoint plus the admin routes.

    Args:
        settings (Optional[Settings]): Application settings; defaults to ``get_settings()``
        token_cache (Optional[TokenCache]): Token cache to share; a new one when omitted
        send_pacer (Optional[SendPacer]): Send pacer to share; a new one when omitted

    Returns:
        FastAPI: The configured application
    """
    if settings is None:
        settings = get_settings()
    if token_cache is None:
        token_cache = TokenCache()
    if send_pacer is None:
        send_pacer = SendPacer(
            settings.PACING_MIN_DELAY_SECONDS,
            settings.PACING_MAX_DELAY_SECONDS,
        )

    http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    refresher = CredentialRefresher(http_client, settings=settings)
    resolver = CredentialResolver(token_cache, refresher, settings=settings)
    service = TweetService.create(resolver, send_pacer, http_client, settings=settings)

    mcp = create_mcp_server(service, settings)
    mcp_app = mcp.streamable_http_app()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        async with mcp.session_manager.run():
            logger.info(f"{SERVER_NAME} ready on {settings.HOST}:{settings.PORT}")
            try:
                yield
            finally:
                await http_client.aclose()

    app = FastAPI(title="Twitter MCP Server", lifespan=lifespan)

    app.state.settings = settings
    app.state.token_cache = token_cache
    app.state.send_pacer = send_pacer
    app.state.refresher = refresher
    app.state.tweet_service = service

    # Register routers
    app.include_router(admin_router)

    # MCP endpoint (/mcp) is served by the mounted app
    app.mount("/", mcp_app)

    return app


configure_logging(get_settings())

app = create_app()

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
