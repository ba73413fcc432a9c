"""
Tenant notification hub.

Every API instance keeps the WebSockets of its own users grouped by tenant
and listens on the Redis pattern `tenant:*`; events are published once to
`tenant:<id>` and each instance forwards them to its local sockets.
"""
import os
import json
import asyncio
from datetime import datetime
from typing import Dict, Optional, Set

import logfire
import redis.asyncio as redis
from fastapi import WebSocket

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
CHANNEL_PREFIX = "tenant:"


def tenant_channel(tenant_id: str) -> str:
    return f"{CHANNEL_PREFIX}{tenant_id}"


def build_event(event: str, payload: dict) -> dict:
    return {
        "event": event,
        "payload": payload,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }


class TenantNotifier:
    def __init__(self):
        self.sockets: Dict[str, Set[WebSocket]] = {}
        self.redis_client = None
        self.pubsub = None
        self.listener_task: Optional[asyncio.Task] = None

    async def start(self):
        """Connect to Redis and start listening; stays local-only when Redis is down"""
        print(f"Redis: connecting to {REDIS_URL}")
        try:
            self.redis_client = redis.from_url(REDIS_URL, encoding="utf-8", decode_responses=True)
            await self.redis_client.ping()
            self.pubsub = self.redis_client.pubsub()
            await self.pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
            self.listener_task = asyncio.create_task(self._listen())
            print("Redis: listening for tenant events")
        except Exception as e:
            print(f"Redis: WARNING - connection failed: {e}")
            print("Redis: notifications will only reach sockets on this instance")
            self.redis_client = None
            self.pubsub = None

    async def connect(self, websocket: WebSocket, tenant_id: str):
        await websocket.accept()
        self.sockets.setdefault(tenant_id, set()).add(websocket)
        logfire.info("Notification socket connected", tenant_id=tenant_id, local_sockets=len(self.sockets[tenant_id]))

    def disconnect(self, websocket: WebSocket, tenant_id: str):
        group = self.sockets.get(tenant_id)
        if group is None:
            return
        group.discard(websocket)
        if not group:
            del self.sockets[tenant_id]
        logfire.info("Notification socket disconnected", tenant_id=tenant_id)

    async def publish(self, tenant_id: str, message: dict):
        """Send a message to every socket of the tenant, on all instances"""
        body = json.dumps(message, default=str)
        if self.redis_client:
            try:
                await self.redis_client.publish(tenant_channel(tenant_id), body)
                return
            except Exception as e:
                logfire.error("Redis publish error", tenant_id=tenant_id, error=str(e))
        await self.deliver_locally(tenant_id, json.loads(body))

    async def deliver_locally(self, tenant_id: str, message: dict):
        stale = []
        for websocket in list(self.sockets.get(tenant_id, ())):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logfire.warn("Dropping notification socket", tenant_id=tenant_id, error=str(e))
                stale.append(websocket)
        for websocket in stale:
            self.disconnect(websocket, tenant_id)

    async def _listen(self):
        try:
            async for message in self.pubsub.listen():
                if message["type"] != "pmessage":
                    continue
                tenant_id = message["channel"][len(CHANNEL_PREFIX):]
                if tenant_id not in self.sockets:
                    continue
                try:
                    data = json.loads(message["data"])
                except json.JSONDecodeError as e:
                    print(f"Redis: invalid JSON on {message['channel']}: {e}")
                    continue
                await self.deliver_locally(tenant_id, data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logfire.error("Redis listener error", error=str(e))

    async def close(self):
        if self.listener_task:
            self.listener_task.cancel()
        if self.pubsub:
            await self.pubsub.aclose()
        if self.redis_client:
            await self.redis_client.aclose()


notifier: Optional[TenantNotifier] = None


async def get_notifier() -> TenantNotifier:
    """Get or start the process-wide notifier"""
    global notifier
    if notifier is None:
        notifier = TenantNotifier()
        await notifier.start()
    return notifier


async def notify_tenant(tenant_id: str, event: str, payload: dict):
    """Publish a tenant event; a no-op until the app has started the notifier."""
    if notifier is None:
        return
    await notifier.publish(tenant_id, build_event(event, payload))
