"""Delivers draw results to the external display surface."""

from __future__ import annotations

import asyncio
import json
import threading
from typing import Any, Callable, Dict, List, Optional, Set

import requests

from packrip.broadcast.token import decode_secret, sign_broadcast_token
from packrip.cards.errors import BroadcastError
from packrip.cards.models import DrawResult
from packrip.utils.config import as_bool
from packrip.utils.logger import get_logger

logger = get_logger(__name__)


class ResultBroadcaster:
    """Best-effort signed push of each draw result.

    Failures are logged and reported as ``False``; nothing is retried and
    nothing is raised to the caller.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        broadcast_cfg = config.get("broadcast", {})
        self.enabled = as_bool(broadcast_cfg.get("enabled"), False)
        self.endpoint: str = broadcast_cfg.get("endpoint", "")
        self.client_id: str = broadcast_cfg.get("client_id", "")
        self.owner_id: Optional[str] = broadcast_cfg.get("owner_id") or None
        self.token_ttl = int(broadcast_cfg.get("token_ttl_seconds", 60))
        self.timeout = float(broadcast_cfg.get("timeout_seconds", 5))

        secret = broadcast_cfg.get("secret") or ""
        self._secret: Optional[bytes] = decode_secret(secret) if secret else None
        if self.enabled and (not self._secret or not self.endpoint):
            logger.warning("Broadcast enabled without secret or endpoint; results will not be pushed")
            self.enabled = False

        # requests.Session is not safe to share across threads, so each
        # broadcast worker thread gets its own
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._pending: Set[asyncio.Task] = set()

    def _thread_session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _deliver(self, channel_id: str, result: DrawResult) -> None:
        if self._secret is None:
            raise BroadcastError("no broadcast secret configured")
        token = sign_broadcast_token(
            self._secret,
            channel_id,
            owner_id=self.owner_id,
            ttl_seconds=self.token_ttl,
        )
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if self.client_id:
            headers["Client-Id"] = self.client_id
        body = {
            "target": ["broadcast"],
            "broadcaster_id": channel_id,
            "is_global_broadcast": False,
            "message": json.dumps(result.envelope()),
        }
        try:
            response = self._thread_session().post(self.endpoint, json=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise BroadcastError(f"transport error: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise BroadcastError(f"push endpoint returned {response.status_code}: {response.text[:200]}")

    def publish(self, channel_id: str, result: DrawResult) -> bool:
        """Push one result; returns whether it was delivered."""
        if not self.enabled:
            logger.debug("Broadcast disabled; skipping result for %s", result.viewer_id)
            return False
        try:
            self._deliver(channel_id, result)
        except BroadcastError as exc:
            logger.warning("Broadcast for %s on %s failed: %s", result.viewer_id, channel_id, exc)
            return False
        logger.info("Broadcast %s result for %s on %s", result.rarity.name, result.viewer_id, channel_id)
        return True

    def publish_later(self, channel_id: str, result: DrawResult) -> Optional[asyncio.Task]:
        """Schedule :meth:`publish` on a worker thread without awaiting it."""
        if not self.enabled:
            return None
        task = asyncio.create_task(
            asyncio.to_thread(self.publish, channel_id, result),
            name=f"broadcast-{channel_id}-{result.viewer_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Broadcast task %s crashed: %s", task.get_name(), exc)

    async def drain(self) -> None:
        """Wait for in-flight broadcasts; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()
