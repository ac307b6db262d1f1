"""
WebSocket manager pushing event changes of a group to connected clients
"""

import asyncio
import json
import logging
from typing import Dict, List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.services.document_store import DocumentChange, DocumentStore, Subscription, events_path
from app.services.repositories import GroupRepo, build_store

logger = logging.getLogger(__name__)

class WebSocketManager:
    """Manages WebSocket connections, one room per group"""

    def __init__(self):
        # group_id -> list of websockets
        self.active_connections: Dict[str, List[WebSocket]] = {}
        # group_id -> store subscription feeding the room
        self.subscriptions: Dict[str, Subscription] = {}

    async def connect(self, websocket: WebSocket, group_id: str, store: DocumentStore):
        """Accept WebSocket connection and add it to the group's room"""
        await websocket.accept()

        if group_id not in self.active_connections:
            self.active_connections[group_id] = []
            self.subscriptions[group_id] = self._watch(group_id, store)

        self.active_connections[group_id].append(websocket)
        logger.info(f"WebSocket connected to group {group_id}. Total connections: {len(self.active_connections[group_id])}")

    def _watch(self, group_id: str, store: DocumentStore) -> Subscription:
        loop = asyncio.get_running_loop()

        def on_changes(changes: List[DocumentChange]) -> None:
            message = {
                "type": "events_changed",
                "group_id": group_id,
                "changes": [
                    {"kind": change.kind, "event_id": change.snapshot.id, "event": change.snapshot.data}
                    for change in changes
                ],
            }
            # Store listeners may run on a backend thread
            asyncio.run_coroutine_threadsafe(self.broadcast_to_group(group_id, message), loop)

        return store.watch_collection(events_path(group_id), on_changes)

    def disconnect(self, websocket: WebSocket, group_id: str):
        """Remove WebSocket connection from the group's room"""
        if group_id in self.active_connections:
            try:
                self.active_connections[group_id].remove(websocket)
                logger.info(f"WebSocket disconnected from group {group_id}. Remaining connections: {len(self.active_connections[group_id])}")

                # Clean up empty rooms and stop watching them
                if not self.active_connections[group_id]:
                    del self.active_connections[group_id]
                    subscription = self.subscriptions.pop(group_id, None)
                    if subscription is not None:
                        subscription.unsubscribe()
            except ValueError:
                # WebSocket was not in the list
                pass

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send message to specific WebSocket"""
        try:
            await websocket.send_text(json.dumps(jsonable_encoder(message)))
        except Exception as e:
            logger.error(f"Error sending personal message: {e}")

    async def broadcast_to_group(self, group_id: str, message: dict):
        """Broadcast message to all WebSockets connected to a group"""
        if group_id not in self.active_connections:
            logger.debug(f"No active connections for group {group_id}")
            return

        payload = json.dumps(jsonable_encoder(message))
        connections = self.active_connections[group_id].copy()

        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(payload)
            except Exception as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket, group_id)

    def get_connection_count(self, group_id: str) -> int:
        """Get number of active connections for a group"""
        return len(self.active_connections.get(group_id, []))

# Global WebSocket manager instance
websocket_manager = WebSocketManager()

router = APIRouter()

@router.websocket("/groups/{group_id}/events")
async def group_events_websocket(
    websocket: WebSocket,
    group_id: str,
    db: Session = Depends(get_db)
):
    """Push changes of a group's events in real time"""
    store = build_store(db)
    group = GroupRepo.get(store, group_id)
    if group is None:
        await websocket.close(code=4004, reason="Group not found")
        return

    await websocket_manager.connect(websocket, group_id, store)

    try:
        await websocket_manager.send_personal_message({
            "type": "connection",
            "message": f"Connected to group: {group.name}",
            "group_id": group_id,
            "connection_count": websocket_manager.get_connection_count(group_id)
        }, websocket)

        while True:
            data = await websocket.receive_text()
            try:
                client_message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")
                continue

            if client_message.get("type") == "ping":
                await websocket_manager.send_personal_message({
                    "type": "pong",
                    "timestamp": client_message.get("timestamp")
                }, websocket)

    except WebSocketDisconnect:
        pass
    finally:
        websocket_manager.disconnect(websocket, group_id)
