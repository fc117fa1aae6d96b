"""
WebSocket Manager Module

This module provides a WebSocketManager class that tracks the WebSocket
connections of instructors monitoring live quizzes and pushes quiz events to
them. Connections are grouped per assessment. In multi-server deployments the
manager can relay the quiz events another server published to Redis.
"""

import json
import uuid
import asyncio
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket
from redis.asyncio import Redis

from edusync.common.logger import get_logger

logger = get_logger(__name__)


class WebSocketManager:
    """
    WebSocket connection manager for live quiz monitoring.

    Attributes:
        active_connections: Dictionary of connection IDs to WebSocket instances
        connection_groups: Dictionary mapping group names to sets of connection IDs
        user_connections: Dictionary mapping user IDs to sets of connection IDs
        redis: Optional Redis client to relay events published by other servers
    """

    def __init__(self, redis_client: Optional[Redis] = None):
        self.active_connections: Dict[str, WebSocket] = {}
        self.connection_groups: Dict[str, Set[str]] = {}
        self.user_connections: Dict[str, Set[str]] = {}
        self.redis = redis_client
        self._relay_task: Optional[asyncio.Task] = None

    async def connect(self, websocket: WebSocket, user_id: Optional[str] = None) -> str:
        """
        Accept a WebSocket connection and register it.

        Args:
            websocket: The WebSocket connection to manage
            user_id: Optional user ID to associate with this connection

        Returns:
            Connection ID for the accepted connection
        """
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.active_connections[connection_id] = websocket

        if user_id:
            self.user_connections.setdefault(user_id, set()).add(connection_id)

        logger.debug(f"WebSocket connection {connection_id} established" +
                     (f" for user {user_id}" if user_id else ""))
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        """Remove a WebSocket connection from every group and user set."""
        if connection_id not in self.active_connections:
            return

        self.active_connections.pop(connection_id)

        for index in (self.connection_groups, self.user_connections):
            for name in list(index.keys()):
                index[name].discard(connection_id)
                if not index[name]:
                    del index[name]

        logger.debug(f"WebSocket connection {connection_id} disconnected")

    async def add_to_group(self, connection_id: str, group: str) -> None:
        """
        Add a connection to a group.

        Args:
            connection_id: Connection ID to add to group
            group: Group name
        """
        if connection_id not in self.active_connections:
            logger.warning(f"Cannot add connection {connection_id} to group {group}: Connection not found")
            return

        self.connection_groups.setdefault(group, set()).add(connection_id)
        logger.debug(f"Added connection {connection_id} to group {group}")

    async def send_personal_message(self, message: Any, connection_id: str) -> bool:
        """
        Send a message to a specific connection.

        Args:
            message: Message to send (converted to JSON if not a string)
            connection_id: Connection ID to send message to

        Returns:
            True if sent successfully, False otherwise
        """
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.warning(f"Cannot send message to connection {connection_id}: Connection not found")
            return False

        if not isinstance(message, str):
            message = json.dumps(message)

        try:
            await websocket.send_text(message)
            return True
        except Exception as e:
            logger.error(f"Error sending message to connection {connection_id}: {str(e)}")
            # Connection is stale
            await self.disconnect(connection_id)
            return False

    async def broadcast_to_group(self, message: Any, group: str) -> int:
        """
        Broadcast a message to a specific group of connections.

        Args:
            message: Message to broadcast
            group: Group name to send to

        Returns:
            Number of connections the message was sent to
        """
        sent_count = 0
        for connection_id in list(self.connection_groups.get(group, ())):
            if await self.send_personal_message(message, connection_id):
                sent_count += 1
        return sent_count

    def group_size(self, group: str) -> int:
        return len(self.connection_groups.get(group, ()))

    async def start_redis_relay(self, pattern: str = "quiz_events:*") -> None:
        """
        Relay quiz events published to Redis to the local monitors.

        Should be called during application startup on servers that do not
        emit the events themselves.
        """
        if not self.redis:
            logger.warning("Cannot start Redis relay: No Redis client provided")
            return

        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(pattern)
        self._relay_task = asyncio.create_task(self._relay(pubsub))
        logger.info(f"Started Redis relay for {pattern}")

    async def stop_redis_relay(self) -> None:
        if self._relay_task is not None:
            self._relay_task.cancel()
            try:
                await self._relay_task
            except asyncio.CancelledError:
                pass
            self._relay_task = None

    async def _relay(self, pubsub) -> None:
        try:
            async for message in pubsub.listen():
                if message["type"] != "pmessage":
                    continue
                try:
                    channel = message["channel"]
                    if isinstance(channel, bytes):
                        channel = channel.decode("utf-8")
                    assessment_id = channel.split(":", 1)[1]
                    event = json.loads(message["data"])
                    await self.broadcast_to_group(
                        {"type": "quiz_event", "data": event}, f"assessment:{assessment_id}"
                    )
                except (ValueError, IndexError) as e:
                    logger.error(f"Error processing Redis pubsub message: {str(e)}")
        except asyncio.CancelledError:
            await pubsub.punsubscribe()
            logger.info("Redis relay stopped")
            raise
