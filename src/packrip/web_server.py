"""FastAPI web server for the pack rip backend."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from packrip.cards.awarder import CardAwarder
from packrip.cards.entry import ChatMessage, RipCommandFilter
from packrip.cards.errors import ConfigurationError, EmptyPoolError, PersistError
from packrip.cards.event_store import RipEventStore
from packrip.cards.scheduler import SchedulerRegistry
from packrip.ledger.store import CollectionLedger, ConfigStore
from packrip.utils.logger import get_logger

logger = get_logger(__name__)


class RipEventRequest(BaseModel):
    channelId: Optional[str] = None


class GiveCardRequest(BaseModel):
    channelId: str
    viewerId: str
    card: Dict[str, Any]


class RipCardRequest(BaseModel):
    channelId: Optional[str] = None
    viewerId: Optional[str] = None


class OpenWindowRequest(BaseModel):
    durationSeconds: Optional[float] = Field(default=None, gt=0)


class EnrollRequest(BaseModel):
    viewerId: str
    displayName: Optional[str] = None


class ChatMessageRequest(BaseModel):
    userId: Optional[str] = None
    username: Optional[str] = None
    message: str
    self_: bool = Field(default=False, alias="self")


class RipWebServer:
    """HTTP and WebSocket gateway for window control, collections and overlays."""

    def __init__(
        self,
        config: Dict[str, Any],
        schedulers: SchedulerRegistry,
        awarder: CardAwarder,
        events: RipEventStore,
    ) -> None:
        self.config = config
        self.schedulers = schedulers
        self.awarder = awarder
        self.events = events
        self.command_filter = RipCommandFilter()
        self.leaderboard_limit = int(config.get("app", {}).get("leaderboard_limit", 50))

        self.app = FastAPI(
            title="Pack Rip API",
            description="Card pack windows, viewer collections and overlay feed",
            version="1.0.0",
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._broadcast_queue: Optional[asyncio.Queue[Tuple[str, Dict[str, Any] | None]]] = None
        self._broadcast_task: Optional[asyncio.Task[None]] = None
        self._ws_lock: Optional[asyncio.Lock] = None
        self._listeners_registered = False
        self._websockets: Set[WebSocket] = set()

        self._setup_middleware()
        self._setup_routes()

    @property
    def config_store(self) -> ConfigStore:
        return self.awarder.config_store

    @property
    def ledger(self) -> CollectionLedger:
        return self.awarder.ledger

    # ------------------------------------------------------------------
    # FastAPI scaffolding
    # ------------------------------------------------------------------
    def _setup_middleware(self) -> None:
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_routes(self) -> None:  # noqa: C901 - routing setup intentionally verbose
        @self.app.get("/")
        async def root() -> Dict[str, Any]:
            return {"status": "Backend running!"}

        # ------------------------------------------------------------------
        # Configuration
        # ------------------------------------------------------------------
        @self.app.post("/sync-config")
        async def sync_config(payload: Dict[str, Any], channelId: Optional[str] = None) -> Dict[str, Any]:
            try:
                config = await asyncio.to_thread(self.config_store.sync_config, channelId, payload)
            except ConfigurationError as exc:
                raise HTTPException(status_code=400, detail={"success": False, "error": str(exc)})
            return {"ok": True, "defaultCollectionId": config.default_collection_id}

        # ------------------------------------------------------------------
        # Rip events for overlays
        # ------------------------------------------------------------------
        @self.app.post("/rip-event")
        async def rip_event(request: RipEventRequest) -> Dict[str, Any]:
            if not request.channelId:
                raise HTTPException(status_code=400, detail={"success": False, "error": "Missing channelId"})
            stamp = self.events.record_rip(request.channelId)
            return {"success": True, "at": stamp}

        @self.app.get("/rip-status/{channel_id}")
        async def rip_status(channel_id: str) -> Dict[str, Any]:
            return {"lastRipAt": self.events.last_rip_at(channel_id)}

        # ------------------------------------------------------------------
        # Collections
        # ------------------------------------------------------------------
        @self.app.get("/viewer/{channel_id}/{viewer_id}")
        async def get_viewer(channel_id: str, viewer_id: str) -> Dict[str, Any]:
            record = await asyncio.to_thread(self.ledger.get, channel_id, viewer_id)
            return record.to_dict()

        @self.app.post("/give-card")
        async def give_card(request: GiveCardRequest) -> Dict[str, Any]:
            try:
                record = await asyncio.to_thread(
                    self.ledger.give, request.channelId, request.viewerId, request.card
                )
            except PersistError as exc:
                logger.error("give-card failed: %s", exc)
                raise HTTPException(status_code=500, detail={"success": False, "error": "Could not save card"})
            return {"ok": True, "totalValue": float(record.total_value)}

        @self.app.post("/rip-card")
        async def rip_card(request: RipCardRequest) -> Dict[str, Any]:
            if not request.channelId or not request.viewerId:
                raise HTTPException(
                    status_code=400,
                    detail={"success": False, "error": "Missing channelId or viewerId"},
                )
            try:
                result = await asyncio.to_thread(self.awarder.award, request.channelId, request.viewerId)
            except (ConfigurationError, EmptyPoolError) as exc:
                raise HTTPException(status_code=500, detail={"success": False, "error": str(exc)})
            except PersistError as exc:
                logger.error("RIP CARD ERROR: %s", exc)
                raise HTTPException(status_code=500, detail={"success": False, "error": "Internal backend error"})
            self.events.add_result(result.to_dict())
            return {"success": True, "rarity": result.rarity.name, "card": result.item.as_card()}

        @self.app.get("/leaderboard/{channel_id}")
        async def leaderboard(channel_id: str) -> List[Dict[str, Any]]:
            entries = await asyncio.to_thread(self.ledger.top_n, channel_id, self.leaderboard_limit)
            return [entry.to_dict() for entry in entries]

        # ------------------------------------------------------------------
        # Window control
        # ------------------------------------------------------------------
        @self.app.get("/window/{channel_id}")
        async def window_status(channel_id: str) -> Dict[str, Any]:
            scheduler = self.schedulers.get(channel_id)
            snapshot = scheduler.window.snapshot()
            snapshot["lastReport"] = scheduler.last_report.to_dict() if scheduler.last_report else None
            return snapshot

        @self.app.post("/window/{channel_id}/open")
        async def open_window(channel_id: str, request: Optional[OpenWindowRequest] = None) -> Dict[str, Any]:
            scheduler = self.schedulers.get(channel_id)
            duration = request.durationSeconds if request else None
            window_id = await scheduler.open(duration)
            return {"success": True, "windowId": window_id, "closesAt": scheduler.window.closes_at}

        @self.app.post("/window/{channel_id}/enroll")
        async def enroll(channel_id: str, request: EnrollRequest) -> Dict[str, Any]:
            status = self.schedulers.get(channel_id).enroll(request.viewerId, request.displayName)
            return {"success": True, "status": status.value}

        @self.app.post("/window/{channel_id}/chat")
        async def chat_message(channel_id: str, request: ChatMessageRequest) -> Dict[str, Any]:
            event = self.command_filter.parse(
                ChatMessage(
                    channel_id=channel_id,
                    user_id=request.userId,
                    username=request.username,
                    text=request.message,
                    is_self=request.self_,
                )
            )
            if event is None:
                return {"success": True, "status": "ignored"}
            status = self.schedulers.get(channel_id).enroll(event.viewer_id, event.display_name)
            return {"success": True, "status": status.value}

        @self.app.post("/window/{channel_id}/resolve")
        async def resolve_window(channel_id: str) -> Dict[str, Any]:
            report = await self.schedulers.get(channel_id).resolve()
            body = report.to_dict()
            body["success"] = report.config_error is None
            return body

        # ------------------------------------------------------------------
        # WebSocket endpoint
        # ------------------------------------------------------------------
        @self.app.websocket("/ws/rips")
        async def websocket_endpoint(websocket: WebSocket) -> None:
            await websocket.accept()
            if self._ws_lock is None:
                self._ws_lock = asyncio.Lock()
            async with self._ws_lock:
                self._websockets.add(websocket)
            logger.info("WebSocket client connected (%s total)", len(self._websockets))
            try:
                await websocket.send_json({"type": "snapshot", "payload": self._build_initial_snapshot()})
                while True:
                    try:
                        await websocket.receive_text()
                    except WebSocketDisconnect:
                        break
            finally:
                async with self._ws_lock:
                    self._websockets.discard(websocket)
                logger.info("WebSocket client disconnected (%s remaining)", len(self._websockets))

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    async def start(self, host: str = "0.0.0.0", port: int = 3000) -> None:
        import uvicorn

        logger.info("Starting pack rip web server on %s:%s", host, port)
        self._loop = asyncio.get_running_loop()
        if self._broadcast_queue is None:
            self._broadcast_queue = asyncio.Queue()
        if self._ws_lock is None:
            self._ws_lock = asyncio.Lock()
        self._register_store_listeners()
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._broadcast_loop(), name="rip-web-broadcast")

        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        server = uvicorn.Server(config)
        try:
            await server.serve()
        finally:
            logger.info("Pack rip web server stopped")

    async def stop(self) -> None:
        logger.info("Stopping pack rip web server")
        if self._broadcast_task:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None
        if self._ws_lock is None:
            self._ws_lock = asyncio.Lock()
        async with self._ws_lock:
            for websocket in list(self._websockets):
                try:
                    await websocket.close(code=1001, reason="Server shutdown")
                except RuntimeError as exc:
                    logger.debug("Error closing websocket: %s", exc)
            self._websockets.clear()

    # ------------------------------------------------------------------
    # Store listeners & broadcasting
    # ------------------------------------------------------------------
    def _register_store_listeners(self) -> None:
        if self._listeners_registered:
            return
        for event in ("window_update", "card_awarded", "rip_event"):
            self.events.add_listener(event, lambda payload, evt=event: self._enqueue_broadcast(evt, payload))
        self._listeners_registered = True

    def _enqueue_broadcast(self, event_type: str, payload: Dict[str, Any] | None) -> None:
        if not self._broadcast_queue or not self._loop:
            return
        try:
            self._loop.call_soon_threadsafe(self._broadcast_queue.put_nowait, (event_type, payload))
        except RuntimeError:  # pragma: no cover - loop already closing
            logger.debug("Failed to enqueue broadcast for %s", event_type)

    async def _broadcast_loop(self) -> None:
        queue = self._broadcast_queue
        if queue is None:
            return
        while True:
            try:
                event_type, payload = await queue.get()
                await self._broadcast_to_clients(event_type, payload)
            except asyncio.CancelledError:
                break
            except Exception as exc:  # pragma: no cover - keeps the feed alive
                logger.exception("Broadcast loop error: %s", exc)

    async def _broadcast_to_clients(self, event_type: str, payload: Dict[str, Any] | None) -> None:
        if self._ws_lock is None:
            self._ws_lock = asyncio.Lock()
        message = {"type": event_type, "payload": payload, "timestamp": datetime.utcnow().isoformat()}
        async with self._ws_lock:
            if not self._websockets:
                return
            to_remove: List[WebSocket] = []
            for websocket in self._websockets:
                try:
                    await websocket.send_json(message)
                except (RuntimeError, WebSocketDisconnect) as exc:
                    logger.debug("WebSocket send failed: %s", exc)
                    to_remove.append(websocket)
            for websocket in to_remove:
                self._websockets.discard(websocket)

    def _build_initial_snapshot(self) -> Dict[str, Any]:
        return {
            "windows": [self.schedulers.get(channel).window.snapshot() for channel in self.schedulers.channels()],
            "live_feed": self.events.get_live_feed(limit=20),
        }
