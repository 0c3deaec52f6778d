# chat_relay/services/connection_manager.py

from __future__ import annotations

import asyncio
import uuid
from typing import Dict, Optional, Set

from fastapi import WebSocket

from chat_relay.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 256

# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Manages WebSocket connections and their outbound traffic.

    This is the transport side of the relay. Room membership lives in the
    RoomManager; this class only knows which socket belongs to which
    connection id and how to get frames onto it.

    Every connection gets a bounded outbound queue drained by its own writer
    task. ``send`` only enqueues, so a broadcast never waits on a slow
    client and frames reach each client in the order they were produced.
    A client whose queue overflows is closed and cleaned up like any other
    disconnect.

    Data Structures:
        connections: connection_id -> WebSocket
        queues: connection_id -> asyncio.Queue of pending JSON frames
        writers: connection_id -> writer task
        closing: connection ids already being closed for overflow
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.queue_size = queue_size
        self.connections: Dict[str, WebSocket] = {}
        self.queues: Dict[str, asyncio.Queue] = {}
        self.writers: Dict[str, asyncio.Task] = {}
        self.closing: Set[str] = set()
        self._close_tasks: Set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept a new WebSocket connection and start its writer.

        Returns:
            The server-assigned connection id.
        """
        await websocket.accept()

        connection_id = uuid.uuid4().hex
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self.connections[connection_id] = websocket
        self.queues[connection_id] = queue
        self.writers[connection_id] = asyncio.create_task(self._writer(connection_id, websocket, queue))

        logger.info("✓ Connection %s opened. Total: %d", connection_id, len(self.connections))
        return connection_id

    def send(self, connection_id: str, payload: dict) -> None:
        """Queue a frame for one connection. Unknown or closing ids are ignored."""
        queue = self.queues.get(connection_id)
        if queue is None or connection_id in self.closing:
            return
        try:
            queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full for %s, closing slow client", connection_id)
            self.closing.add(connection_id)
            task = asyncio.create_task(self._close(connection_id))
            self._close_tasks.add(task)
            task.add_done_callback(self._close_tasks.discard)

    async def disconnect(self, connection_id: str) -> None:
        """
        Forget a connection and stop its writer.

        Safe to call more than once for the same id.
        """
        self.connections.pop(connection_id, None)
        self.queues.pop(connection_id, None)
        self.closing.discard(connection_id)
        writer = self.writers.pop(connection_id, None)
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
            logger.info("✗ Connection %s closed. Total: %d", connection_id, len(self.connections))

    async def _writer(self, connection_id: str, websocket: WebSocket, queue: asyncio.Queue) -> None:
        while True:
            payload = await queue.get()
            try:
                await websocket.send_json(payload)
            except Exception as e:
                # The receive loop sees the same dead socket and runs cleanup
                logger.error("Send error on %s: %s", connection_id, e)
                return

    async def _close(self, connection_id: str, code: int = 1013) -> None:
        websocket: Optional[WebSocket] = self.connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.close(code=code)
        except Exception as e:
            logger.debug("Close failed for %s: %s", connection_id, e)
