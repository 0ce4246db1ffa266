"""MCP transport endpoint.

``POST /api/mcp`` carries one JSON-RPC envelope per request. Session
affinity is carried in the ``Mcp-Session-Id`` header, which is always
echoed back (freshly minted when the request had none).
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from storefront.api.dispatcher import RpcDispatcher

router = APIRouter()

SESSION_HEADER = "Mcp-Session-Id"
MCP_PATH = "/api/mcp"


def get_dispatcher(request: Request) -> RpcDispatcher:
    """Get the dispatcher built for this application."""
    return request.app.state.dispatcher


@router.post(MCP_PATH)
async def handle_rpc(
    request: Request,
    dispatcher: RpcDispatcher = Depends(get_dispatcher),
) -> JSONResponse:
    """Dispatch one JSON-RPC envelope against the caller's session."""
    try:
        body = await request.json()
    except ValueError:
        body = None

    session_id, envelope = await dispatcher.dispatch(
        request.headers.get(SESSION_HEADER),
        body,
    )

    return JSONResponse(content=envelope, headers={SESSION_HEADER: session_id})


@router.get(MCP_PATH)
async def reject_get() -> JSONResponse:
    """Server-to-client streams are not offered on this endpoint."""
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"success": False, "error": "GET not implemented"},
    )
