"""
WebSocket Endpoints
Live activity feed for the CEO's change log
"""
import asyncio
import logging
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from supabase import AsyncClient, Client

from leadflow.api.v1.dependencies import get_async_supabase, get_supabase, resolve_session
from leadflow.core.config import ConfigManager
from leadflow.domain.errors import CRMError
from leadflow.domain.models.activity import LeadActivity
from leadflow.domain.services.activity_service import ActivityService
from leadflow.infrastructure.realtime import ActivityFeed, close_realtime

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websockets"])

CLOSE_UNAUTHORIZED = 4001
CLOSE_FORBIDDEN = 4003


async def forward_activities(websocket: WebSocket, queue: "asyncio.Queue[LeadActivity]"):
    """Push each new activity to the socket as it arrives"""
    while True:
        activity = await queue.get()
        await websocket.send_json({
            "type": "activity",
            "activity": activity.model_dump(mode="json"),
        })


async def serve_activity_feed(websocket: WebSocket, supabase: Client, async_supabase: AsyncClient):
    """
    WebSocket endpoint streaming new lead activities.
    
    Query Parameters:
        token: Access token of a CEO session
    
    Messages sent:
        {"type": "snapshot", "activities": [...]} once, on connect
        {"type": "activity", "activity": {...}} per new record
    
    The realtime subscription exists only while the socket is open.
    """
    await websocket.accept()
    
    token = websocket.query_params.get("token")
    try:
        if not token:
            raise HTTPException(status_code=401, detail="Missing token")
        session = resolve_session(token, supabase)
    except HTTPException as e:
        await websocket.send_json({"type": "error", "message": e.detail})
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return
    
    config = ConfigManager()
    service = ActivityService(
        supabase,
        session,
        recency_hours=config.get_float("activity.recency_hours", 3),
    )
    try:
        recent = await service.list_recent()
    except CRMError as e:
        await websocket.send_json({"type": "error", "message": e.message})
        await websocket.close(code=CLOSE_FORBIDDEN)
        return
    
    await websocket.send_json({
        "type": "snapshot",
        "activities": [activity.model_dump(mode="json") for activity in recent],
    })
    
    queue: "asyncio.Queue[LeadActivity]" = asyncio.Queue()
    feed = ActivityFeed(
        async_supabase,
        on_activity=queue.put_nowait,
        table=config.get("activity.table", "lead_activities"),
    )
    
    sender_task = None
    try:
        async with feed:
            sender_task = asyncio.create_task(forward_activities(websocket, queue))
            logger.info(f"Activity feed opened for {session.actor_name}")
            while True:
                message = await websocket.receive_text()
                if message == "ping":
                    await websocket.send_json({"type": "pong"})
    
    except WebSocketDisconnect:
        logger.info(f"Activity feed disconnected for {session.actor_name}")
    
    except Exception as e:
        logger.error(f"Activity feed error for {session.actor_name}: {e}", exc_info=True)
    
    finally:
        if sender_task:
            sender_task.cancel()
            try:
                await sender_task
            except asyncio.CancelledError:
                pass
        logger.info(f"Activity feed closed for {session.actor_name}")


@router.websocket("/ws/activities")
async def activity_feed_endpoint(
    websocket: WebSocket,
    supabase: Client = Depends(get_supabase),
    async_supabase: AsyncClient = Depends(get_async_supabase),
):
    # One async client per socket; its realtime connection goes with it
    try:
        await serve_activity_feed(websocket, supabase, async_supabase)
    finally:
        await close_realtime(async_supabase)
