"""JSON-RPC dispatcher.

Resolves an envelope's ``method`` against a fixed handler table, runs the
handler against the caller's Session and wraps the outcome in a response
envelope. Handler exceptions never escape: they become ``-32603``
errors carrying the exception message.
"""

import json
from typing import Any, Awaitable, Callable

import structlog
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    CallToolResult,
    Implementation,
    InitializeResult,
    ListToolsResult,
    ServerCapabilities,
    TextContent,
    ToolsCapability,
)
from pydantic import ValidationError

from storefront.api.schemas import (
    TOOLS,
    AddToCartInput,
    GetProductInput,
    GetProductsInput,
    LoginInput,
    RemoveFromCartInput,
    RpcRequest,
    ToolCallParams,
)
from storefront.api.tools import StorefrontTools
from storefront.application.session_store import SessionStore, new_session_id
from storefront.domain.exceptions import StorefrontError, UnknownToolError
from storefront.domain.session import Session

logger = structlog.get_logger()

Handler = Callable[[Session, RpcRequest], Awaitable[dict[str, Any]]]


def result_envelope(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def error_envelope(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def error_message(exc: BaseException) -> str:
    """Message for an internal error envelope."""
    if isinstance(exc, StorefrontError):
        return exc.message
    return str(exc) or "Internal error"


class RpcDispatcher:
    """Routes JSON-RPC envelopes to protocol and tool handlers."""

    def __init__(
        self,
        store: SessionStore,
        tools: StorefrontTools,
        server_name: str = "fakestore-mcp-server",
        server_version: str = "1.0.0",
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Session store shared by all requests.
            tools: Tool handlers.
            server_name: Name reported by ``initialize``.
            server_version: Version reported by ``initialize``.
        """
        self.store = store
        self.tools = tools
        self.server_name = server_name
        self.server_version = server_version
        self._handlers: dict[str, Handler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    @property
    def methods(self) -> list[str]:
        """Protocol methods this dispatcher answers."""
        return list(self._handlers)

    async def dispatch(
        self,
        session_id: str | None,
        body: Any,
    ) -> tuple[str, dict[str, Any]]:
        """Handle one request envelope.

        Args:
            session_id: Value of the ``Mcp-Session-Id`` header, if any.
            body: Parsed JSON body, or None if the body was not JSON.

        Returns:
            Tuple of the session id to echo and the response envelope.
        """
        session_id = session_id or new_session_id()

        if not isinstance(body, dict):
            return session_id, error_envelope(None, PARSE_ERROR, "Parse error")

        try:
            request = RpcRequest.model_validate(body)
        except ValidationError:
            raw_id = body.get("id")
            request_id = raw_id if isinstance(raw_id, (int, str)) else None
            return session_id, error_envelope(request_id, INVALID_REQUEST, "Invalid Request")

        handler = self._handlers.get(request.method)
        if handler is None:
            logger.warning("Method not found", method=request.method)
            return session_id, error_envelope(
                request.id, METHOD_NOT_FOUND, "Method not found"
            )

        session, _ = self.store.get_or_create(session_id)

        try:
            async with session.lock:
                result = await handler(session, request)
        except Exception as e:
            logger.exception(
                "Handler failed",
                method=request.method,
                session_id=session_id,
            )
            return session_id, error_envelope(request.id, INTERNAL_ERROR, error_message(e))

        return session_id, result_envelope(request.id, result)

    # =========================================================================
    # Protocol Methods
    # =========================================================================

    async def _initialize(self, session: Session, request: RpcRequest) -> dict[str, Any]:
        result = InitializeResult(
            protocolVersion=LATEST_PROTOCOL_VERSION,
            capabilities=ServerCapabilities(tools=ToolsCapability(listChanged=False)),
            serverInfo=Implementation(
                name=self.server_name,
                version=self.server_version,
            ),
        )
        return result.model_dump(by_alias=True, exclude_none=True, mode="json")

    async def _ping(self, session: Session, request: RpcRequest) -> dict[str, Any]:
        return {}

    async def _list_tools(self, session: Session, request: RpcRequest) -> dict[str, Any]:
        return ListToolsResult(tools=TOOLS).model_dump(
            by_alias=True, exclude_none=True, mode="json"
        )

    async def _call_tool(self, session: Session, request: RpcRequest) -> dict[str, Any]:
        """Validate tool arguments and invoke the named tool."""
        params = ToolCallParams.model_validate(request.params or {})
        name = params.name
        arguments = params.arguments or {}
        tools = self.tools

        logger.info("Tool called", tool=name, session_id=session.session_id)

        if name == "login":
            input_data = LoginInput.model_validate(arguments)
            result = await tools.login(
                session,
                username=input_data.username,
                password=input_data.password,
            )
        elif name == "logout":
            result = await tools.logout(session)
        elif name == "get_products":
            input_data = GetProductsInput.model_validate(arguments)
            result = await tools.get_products(
                session,
                category=input_data.category,
                limit=input_data.limit,
            )
        elif name == "get_product":
            input_data = GetProductInput.model_validate(arguments)
            result = await tools.get_product(session, product_id=input_data.product_id)
        elif name == "get_categories":
            result = await tools.get_categories(session)
        elif name == "get_users":
            result = await tools.get_users(session)
        elif name == "add_to_cart":
            input_data = AddToCartInput.model_validate(arguments)
            result = await tools.add_to_cart(
                session,
                product_id=input_data.product_id,
                quantity=input_data.quantity,
            )
        elif name == "remove_from_cart":
            input_data = RemoveFromCartInput.model_validate(arguments)
            result = await tools.remove_from_cart(
                session,
                product_id=input_data.product_id,
            )
        elif name == "get_cart":
            result = await tools.get_cart(session)
        elif name == "clear_cart":
            result = await tools.clear_cart(session)
        else:
            raise UnknownToolError(name)

        logger.info("Tool completed", tool=name, success=result.get("success"))

        return CallToolResult(
            content=[TextContent(type="text", text=json.dumps(result, default=str))],
        ).model_dump(by_alias=True, exclude_none=True, mode="json")
