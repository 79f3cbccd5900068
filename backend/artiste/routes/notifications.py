"""
Gallery notification routes: the subscriber WebSocket and the peer relay endpoint
"""
import hmac
import ipaddress
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError

from ..config import settings
from ..notifications.hub import NotificationHub
from ..schemas import ApiError, BroadcastResponse, NotificationEvent
from ..logger import logger

router = APIRouter(tags=["Notifications"])

security = HTTPBearer(auto_error=False)


def get_hub(request: Request) -> NotificationHub:
    return request.app.state.hub


def _caller_allowed(host: Optional[str]) -> bool:
    if not host:
        return False
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    for network in settings.BROADCAST_ALLOWED_NETWORKS:
        try:
            if address in ipaddress.ip_network(network, strict=False):
                return True
        except ValueError:
            logger.warning(f"Ignoring invalid network in BROADCAST_ALLOWED_NETWORKS: {network}")
    return False


def require_broadcast_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """
    Only callers from BROADCAST_ALLOWED_NETWORKS may relay events, and when
    BROADCAST_TOKEN is set they must present it as a bearer token.
    """
    host = request.client.host if request.client else None
    if not _caller_allowed(host):
        logger.warning(f"Rejected broadcast from {host}", extra={"client_host": host})
        raise HTTPException(status_code=403, detail="Forbidden")

    if settings.BROADCAST_TOKEN:
        token = credentials.credentials if credentials else ""
        if not hmac.compare_digest(token.encode(), settings.BROADCAST_TOKEN.encode()):
            raise HTTPException(
                status_code=401,
                detail="Invalid or missing broadcast token",
                headers={"WWW-Authenticate": "Bearer"},
            )


@router.post(
    "/api/broadcast",
    response_model=BroadcastResponse,
    dependencies=[Depends(require_broadcast_caller)],
    responses={400: {"model": ApiError}, 401: {"model": ApiError}, 403: {"model": ApiError}},
)
async def broadcast(request: Request, hub: NotificationHub = Depends(get_hub)):
    """
    Relay an event posted by a peer process to this process's subscribers.
    The body must be a JSON event with a `type`; it is forwarded verbatim.
    """
    body = (await request.body()).decode("utf-8", errors="replace")
    try:
        NotificationEvent.model_validate_json(body)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid notification event")

    await hub.broadcast(body)
    return BroadcastResponse(status="ok", subscribers=hub.subscriber_count)


@router.websocket("/ws")
async def gallery_socket(websocket: WebSocket):
    hub: NotificationHub = websocket.app.state.hub
    await websocket.accept()
    await hub.register(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            await hub.handle_message(websocket, message)
    except WebSocketDisconnect:
        pass
    finally:
        await hub.unregister(websocket)
