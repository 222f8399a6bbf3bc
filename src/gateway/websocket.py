"""
WebSocket gateway using FastAPI.

Main gateway orchestrator: authenticates sockets, feeds frames to the event
router and exposes the HTTP side (health, room list, online members, history,
notifications).
- Async/await for all I/O operations
- Idle timeout on every socket
- Structured logging with elapsed_ms
"""

import asyncio
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from pydantic import model_validator

from chat.hub import ChatHub
from chat.permissions import PermissionEvaluator
from common.config import Config
from common.errors import DuplicateConnection, MessageValidationError, Unauthorized
from common.logging import TimedLogger, get_logger
from common.models import Identity, Notification, NotificationType, Role, WireModel
from gateway.auth import Authenticator, JWTAuthenticator, extract_bearer_token
from router.event_router import INVALID_PAYLOAD, EventRouter
from router.message_types import ServerEvent
from store.base import MessageStore

logger = get_logger(__name__)

WS_CLOSE_UNAUTHORIZED = 4401
WS_CLOSE_DUPLICATE_CONNECTION = 4409


class NotificationRequest(WireModel):
    """
    Body of ``POST /notifications``.

    Exactly one target: ``userId``, ``userIds`` or ``roomId``.
    """

    user_id: Optional[str] = None
    user_ids: Optional[List[str]] = None
    room_id: Optional[str] = None
    type: NotificationType = NotificationType.INFO
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _one_target(self) -> "NotificationRequest":
        targets = [t for t in (self.user_id, self.user_ids, self.room_id) if t is not None]
        if len(targets) != 1:
            raise ValueError("exactly one of userId, userIds or roomId is required")
        return self

    def notification(self) -> Notification:
        return Notification(type=self.type, title=self.title, message=self.message, data=self.data)


class WebSocketGateway:
    """FastAPI WebSocket gateway that orchestrates connections and routing."""

    def __init__(
        self,
        config: Config,
        authenticator: Optional[Authenticator] = None,
        store: Optional[MessageStore] = None,
        permissions: Optional[PermissionEvaluator] = None,
    ):
        self.config = config
        self.authenticator = authenticator or JWTAuthenticator(
            os.environ.get("JWT_SECRET", ""), config.auth
        )
        self.hub = ChatHub(config, store=store, permissions=permissions)
        self.router = EventRouter(self.hub)
        self.app = FastAPI(title="Chat Gateway", version="0.1.0", lifespan=self._lifespan)

        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        logger.info(event="gateway_started")
        yield
        self.hub.shutdown()
        logger.info(event="gateway_stopped")

    def _setup_routes(self) -> None:
        """Setup FastAPI routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            store_healthy = await self.hub.store.health_check()
            health_data = {
                "status": "healthy" if store_healthy else "unhealthy",
                "active_connections": self.hub.connections.get_connection_count(),
                "online_users": self.hub.connections.get_online_user_count(),
                "rooms": self.hub.rooms.get_room_count(),
            }
            return JSONResponse(health_data, status_code=200 if store_healthy else 503)

        @self.app.get("/rooms")
        async def list_rooms(request: Request) -> List[Dict[str, Any]]:
            """Rooms the caller has joined, with last message and unread count."""
            identity = await self._require_identity(request)
            summaries = await self.hub.messages.room_summaries(identity)
            return [s.to_wire() for s in summaries]

        @self.app.get("/rooms/{room_id}/online")
        async def room_online(room_id: str, request: Request) -> Dict[str, Any]:
            """Members of a room that are currently online."""
            identity = await self._require_identity(request)
            if not await self.hub.permissions.can_access_room(identity, room_id):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN, detail=f"Access to room {room_id} denied"
                )
            return {"roomId": room_id, "userIds": self.hub.online_members(room_id)}

        @self.app.get("/rooms/{room_id}/messages")
        async def room_history(
            room_id: str,
            request: Request,
            limit: Optional[int] = Query(default=None),
            offset: int = Query(default=0),
        ) -> List[Dict[str, Any]]:
            """Paginated history of a room, oldest first."""
            identity = await self._require_identity(request)
            try:
                messages = await self.hub.messages.history(identity, room_id, limit, offset)
            except Unauthorized as e:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
            except MessageValidationError as e:
                raise HTTPException(status_code=422, detail=e.message)
            return [m.to_wire() for m in messages]

        @self.app.post("/notifications")
        async def send_notification(body: NotificationRequest, request: Request):
            """Push a notification to a user, several users or a room (admins only)."""
            identity = await self._require_identity(request)
            if identity.role is not Role.ADMIN:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")

            notifications = self.hub.notifications
            if body.user_ids is not None:
                delivered = await notifications.notify_many(body.user_ids, body.notification())
            elif body.room_id is not None:
                delivered = await notifications.notify_room(body.room_id, body.notification())
            else:
                delivered = await notifications.notify(
                    body.user_id, body.type, body.title, body.message, body.data
                )
            return {"delivered": delivered}

        @self.app.websocket("/ws/chat")
        async def websocket_endpoint(websocket: WebSocket):
            """Main WebSocket endpoint."""
            await self._handle_websocket_connection(websocket)

    async def _require_identity(self, request: Request) -> Identity:
        token = extract_bearer_token(request.headers.get("authorization"))
        identity = await self.authenticator.authenticate(token)
        if identity is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
            )
        return identity

    async def _handle_websocket_connection(self, websocket: WebSocket) -> None:
        """Authenticate, register and serve one socket."""
        identity = await self.authenticator.authenticate_request(
            websocket.headers, websocket.query_params
        )
        if identity is None:
            await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
            return

        if self.hub.connections.get_connection_count() >= self.config.gateway.max_connections:
            logger.warning(
                event="connection_rejected",
                reason="max_connections",
                user_id=identity.id,
                max_connections=self.config.gateway.max_connections,
            )
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
            return

        await websocket.accept()
        connection_id = str(uuid.uuid4())

        try:
            await self.hub.connect(websocket, identity, connection_id)
        except DuplicateConnection:
            await websocket.close(code=WS_CLOSE_DUPLICATE_CONNECTION)
            return

        try:
            await self._message_loop(websocket, connection_id)
        except WebSocketDisconnect:
            logger.info(
                event="client_disconnect",
                message="WebSocket client disconnected",
                connection_id=connection_id,
            )
        except Exception as e:
            logger.error(
                event="connection_error",
                message="WebSocket connection error",
                connection_id=connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            await self.hub.disconnect(connection_id)

    async def _message_loop(self, websocket: WebSocket, connection_id: str) -> None:
        """Main message handling loop for a WebSocket connection."""
        while True:
            try:
                message_data = await asyncio.wait_for(
                    websocket.receive_text(), timeout=self.config.gateway.connection_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    event="connection_timeout",
                    message="WebSocket connection idle timeout",
                    connection_id=connection_id,
                    timeout_seconds=self.config.gateway.connection_timeout,
                )
                await websocket.close(code=status.WS_1001_GOING_AWAY)
                break
            except KeyError:
                # Binary frame: receive_text found no "text" key
                await self.hub.connections.send_to_connection(
                    connection_id,
                    ServerEvent.error("Only text frames are supported", INVALID_PAYLOAD),
                )
                continue

            self.hub.connections.touch(connection_id)
            with TimedLogger(logger, "event_processed", connection_id=connection_id):
                await self.router.dispatch_raw(connection_id, message_data)


def create_gateway_app(
    config: Config,
    authenticator: Optional[Authenticator] = None,
    store: Optional[MessageStore] = None,
    permissions: Optional[PermissionEvaluator] = None,
) -> FastAPI:
    """Create and configure the FastAPI gateway application."""
    gateway = WebSocketGateway(config, authenticator, store, permissions)
    gateway.app.state.gateway = gateway
    return gateway.app
