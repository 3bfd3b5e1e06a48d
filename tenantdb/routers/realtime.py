"""Realtime channel: a WebSocket that streams row changes of subscribed tables.

Connect with `/realtime?projectId=<id>&apikey=<anon or service key>`
(or `adminToken=<admin session token>`), then send:

    {"type": "subscribe", "table": "items"}
    {"type": "unsubscribe", "table": "items"}

Server messages:

    {"type": "subscribed", "table": "items"}
    {"type": "change", "event": "INSERT", "table": "items", "record": {...}}
    {"type": "error", "error": "..."}
"""

import asyncio
import json
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from tenantdb.dependencies import authorize_project_key
from tenantdb.errors import TenantDBError, UnauthorizedError
from tenantdb.platform import Platform
from tenantdb.realtime import ChangeBus, Subscription, queue_deliverer

logger = structlog.get_logger()
router = APIRouter(tags=["realtime"])

# Application close codes (4000-4999 range)
CLOSE_UNAUTHORIZED = 4401
CLOSE_NOT_FOUND = 4404


def handle_client_message(
    bus: ChangeBus,
    subscription: Subscription,
    raw: str,
) -> dict[str, Any]:
    """Apply one subscribe/unsubscribe request and build the reply."""
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        return {"type": "error", "error": "Message must be valid JSON"}

    if not isinstance(message, dict):
        return {"type": "error", "error": "Message must be a JSON object"}

    table = message.get("table")
    if not isinstance(table, str) or not table:
        return {"type": "error", "error": "Field 'table' is required"}

    kind = message.get("type")
    if kind == "subscribe":
        bus.subscribe(subscription, table)
        return {"type": "subscribed", "table": table}
    if kind == "unsubscribe":
        bus.unsubscribe(subscription, table)
        return {"type": "unsubscribed", "table": table}

    return {"type": "error", "error": f"Unknown message type: {kind}"}


async def _forward(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Single writer: everything sent to the client goes through the queue."""
    while True:
        message = await queue.get()
        await websocket.send_json(message)


@router.websocket("/realtime")
async def realtime(
    websocket: WebSocket,
    project_id: Annotated[str | None, Query(alias="projectId")] = None,
    apikey: Annotated[str | None, Query()] = None,
    admin_token: Annotated[str | None, Query(alias="adminToken")] = None,
):
    platform: Platform = websocket.app.state.platform
    await websocket.accept()

    try:
        context = authorize_project_key(platform, project_id or "", apikey, admin_token=admin_token)
    except TenantDBError as e:
        code = CLOSE_UNAUTHORIZED if isinstance(e, UnauthorizedError) else CLOSE_NOT_FOUND
        await websocket.send_json({"type": "error", "error": e.message})
        await websocket.close(code=code)
        return

    queue: asyncio.Queue = asyncio.Queue(maxsize=platform.realtime_queue_size)
    subscription = platform.change_bus.connect(
        context.project_id,
        queue_deliverer(queue, asyncio.get_running_loop()),
    )
    sender = asyncio.create_task(_forward(websocket, queue))

    try:
        while True:
            raw = await websocket.receive_text()
            reply = handle_client_message(platform.change_bus, subscription, raw)
            await queue.put(reply)
    except WebSocketDisconnect:
        logger.debug("realtime_client_closed", project_id=context.project_id)
    finally:
        platform.change_bus.disconnect(subscription)
        sender.cancel()
        # Pending deliveries are discarded with the connection
        await asyncio.gather(sender, return_exceptions=True)
