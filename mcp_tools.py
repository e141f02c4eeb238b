"""
MCP Tool Definitions
====================

Registers the ``post_tweet`` and ``post_tweet_thread`` tools on a FastMCP
server and adapts between the protocol and the TweetService.

Caller credentials and identity arrive as out-of-band HTTP headers on the
tool invocation (``twitter_client_id``, ``twitter_refresh_token``,
``user_id``, ``server_id``, ...), not as tool arguments.

Errors are rendered in two ways. A platform rate limit becomes a plain text
result the client can show to the user. Every other failure is raised as a
protocol-level ``McpError`` carrying a descriptive message.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.shared.exceptions import McpError
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    CallToolRequest,
    CallToolResult,
    ErrorData,
    ServerResult,
    TextContent,
)

from config import get_settings
from errors import (
    AuthenticationFailure,
    InternalError,
    InvalidMedia,
    InvalidParameters,
    PlatformError,
    RateLimitExceeded,
    TwitterMCPError,
)
from models import CallerContext
from services.tweet_service import TweetService

logger = logging.getLogger(__name__)

SERVER_NAME = "twitter-mcp"

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment before trying again."

# JSON-RPC server-defined error code for credential failures
AUTHENTICATION_ERROR = -32001


def caller_from_context(ctx: Context) -> CallerContext:
    """Read the caller headers from the HTTP request behind a tool invocation."""
    request = getattr(ctx.request_context, "request", None)
    headers = getattr(request, "headers", None)
    return CallerContext.from_headers(headers)


def to_mcp_error(error: TwitterMCPError) -> McpError:
    if isinstance(error, (InvalidParameters, InvalidMedia)):
        return McpError(ErrorData(code=INVALID_PARAMS, message=error.message))
    if isinstance(error, AuthenticationFailure):
        return McpError(ErrorData(code=AUTHENTICATION_ERROR, message=error.message))
    if isinstance(error, PlatformError):
        return McpError(ErrorData(code=INTERNAL_ERROR, message=f"Twitter API error: {error.message}"))
    return McpError(ErrorData(code=INTERNAL_ERROR, message=error.message))


class TwitterTools:
    """
    Protocol-independent implementation of the tools.

    Args:
        service (TweetService): The posting service
    """

    def __init__(self, service: TweetService):
        self.service = service

    async def post_tweet(self, args: Dict[str, Any], caller: CallerContext) -> str:
        logger.info(f"{caller.user_id} post_tweet args: {self._summarize(args)}")
        try:
            tweet_id = await self.service.post_once(args, caller)
            urls = await self.service.build_status_urls(caller, [tweet_id])
        except Exception as e:
            return self.handle_error(e)

        logger.info(f"{caller.user_id} post_tweet url: {urls[0]}")
        return f"Tweet posted successfully!\nURL: {urls[0]}"

    async def post_tweet_thread(self, args: Dict[str, Any], caller: CallerContext) -> str:
        logger.info(f"{caller.user_id} post_tweet_thread with {len(args.get('tweets') or [])} tweets")
        try:
            tweet_ids = await self.service.post_thread(args, caller)
            urls = await self.service.build_status_urls(caller, tweet_ids) if tweet_ids else []
        except Exception as e:
            return self.handle_error(e)

        logger.info(f"{caller.user_id} post_tweet_thread urls: {urls}")
        return "Tweet thread posted successfully!\nURL: " + "\n".join(urls)

    def handle_error(self, error: Exception) -> str:
        """
        Render a failure.

        Returns:
            str: The soft message for platform rate limits

        Raises:
            McpError: For every other failure
        """
        if isinstance(error, RateLimitExceeded):
            logger.warning(f"Platform rate limit hit: {error.message}")
            return RATE_LIMIT_MESSAGE

        if isinstance(error, McpError):
            raise error

        if isinstance(error, TwitterMCPError):
            logger.info(f"Tool failed with {error!r}")
            raise to_mcp_error(error) from error

        logger.exception("Unexpected error while running tool")
        raise to_mcp_error(InternalError("An unexpected error occurred")) from error

    @staticmethod
    def _summarize(args: Dict[str, Any]) -> Dict[str, Any]:
        # Inline media payloads can be megabytes of base64
        summary = dict(args)
        for field in ("images", "videos"):
            if summary.get(field):
                summary[field] = f"<{len(summary[field])} item(s)>"
        return summary


def protocol_error_handler(server: FastMCP):
    """
    Build a ``tools/call`` handler that lets ``McpError`` reach the client.

    FastMCP wraps every exception raised by a tool in ``ToolError`` and the
    default handler renders it as an ``isError`` text result. This handler
    unwraps it so the error code is sent as a JSON-RPC error instead.

    Args:
        server (FastMCP): The server whose tools are called

    Returns:
        Callable: Request handler for ``CallToolRequest``
    """

    async def handle_call_tool(request: CallToolRequest) -> ServerResult:
        try:
            result = await server.call_tool(request.params.name, request.params.arguments or {})
        except ToolError as e:
            if isinstance(e.__cause__, McpError):
                raise e.__cause__
            # Unknown tool or arguments rejected by the tool signature
            raise McpError(ErrorData(code=INVALID_PARAMS, message=str(e))) from e
        except McpError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error calling tool {request.params.name}")
            raise McpError(ErrorData(code=INTERNAL_ERROR, message="An unexpected error occurred")) from e

        structured = None
        if isinstance(result, tuple):
            content, structured = result
        elif isinstance(result, dict):
            content, structured = [TextContent(type="text", text=json.dumps(result))], result
        else:
            content = result
        return ServerResult(CallToolResult(content=list(content), structuredContent=structured, isError=False))

    return handle_call_tool


def create_mcp_server(service: TweetService, settings=None) -> FastMCP:
    """
    Build the FastMCP server exposing the posting tools.

    Args:
        service (TweetService): The posting service the tools delegate to
        settings: Application settings; defaults to ``get_settings()``

    Returns:
        FastMCP: Server configured for stateless streamable HTTP
    """
    settings = get_settings() if settings is None else settings
    tools = TwitterTools(service)
    server = FastMCP(SERVER_NAME, host=settings.HOST, stateless_http=True)

    @server.tool(name="post_tweet", description="Post a new tweet to Twitter")
    async def post_tweet(
        text: str,
        ctx: Context,
        reply_to_tweet_id: Optional[str] = None,
        images: Optional[List[str]] = None,
        videos: Optional[List[str]] = None,
    ) -> str:
        """Post a new tweet to Twitter.

        Args:
            text: The content of your tweet
            reply_to_tweet_id: Optional ID of the tweet to reply to
            images: Optional base64 data URLs or HTTP links, e.g. ["https://pic.com/a.jpg"]
            videos: Optional base64 data URLs or HTTP links, e.g. ["https://video.com/a.mp4"]
        """
        args = {"text": text, "reply_to_tweet_id": reply_to_tweet_id, "images": images, "videos": videos}
        return await tools.post_tweet(args, caller_from_context(ctx))

    @server.tool(
        name="post_tweet_thread",
        description=(
            "Publish multiple related tweets on Twitter at once, forming an organized tweet thread. "
            'Each tweet must have a text field, other fields are optional, e.g. '
            '[{"text": "Hello", "images": ["https://pic.com/a.jpg"], "videos": ["https://video.com/a.mp4"]}]'
        ),
    )
    async def post_tweet_thread(tweets: List[Dict[str, Any]], ctx: Context) -> str:
        """Publish multiple related tweets as a thread."""
        return await tools.post_tweet_thread({"tweets": tweets}, caller_from_context(ctx))

    server._mcp_server.request_handlers[CallToolRequest] = protocol_error_handler(server)

    return server
