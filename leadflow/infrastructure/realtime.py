"""
Realtime Activity Feed
Scoped subscription to new lead_activities rows over Supabase realtime.

Usage:
    async with ActivityFeed(async_client, on_activity=queue.put_nowait) as feed:
        ...
    # channel is removed here, even on error
"""
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

import pydantic
from supabase import AsyncClient

from leadflow.domain.models.activity import LeadActivity

logger = logging.getLogger(__name__)


def extract_record(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Pull the inserted row out of a postgres_changes payload"""
    data = payload.get("data") or {}
    record = data.get("record") or payload.get("new") or payload.get("record")
    return record if isinstance(record, dict) else None


class ActivityFeed:
    """
    Live stream of newly inserted activity records.
    
    Acquired when the activity log is opened and released when it is
    closed; the realtime channel never outlives the context block.
    Incoming records are prepended in arrival order.
    """
    
    def __init__(
        self,
        client: AsyncClient,
        on_activity: Optional[Callable[[LeadActivity], None]] = None,
        table: str = "lead_activities",
        schema: str = "public",
    ):
        self.client = client
        self.on_activity = on_activity
        self.table = table
        self.schema = schema
        self.activities: List[LeadActivity] = []
        self._channel: Optional[Any] = None
    
    @property
    def is_active(self) -> bool:
        return self._channel is not None
    
    async def __aenter__(self) -> "ActivityFeed":
        await self.open()
        return self
    
    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
    
    async def open(self) -> None:
        if self._channel is not None:
            return
        
        channel = self.client.channel(f"{self.table}-{uuid.uuid4().hex[:8]}")
        channel.on_postgres_changes(
            "INSERT",
            schema=self.schema,
            table=self.table,
            callback=self._handle_change,
        )
        await channel.subscribe()
        self._channel = channel
        logger.info(f"Subscribed to {self.schema}.{self.table} inserts")
    
    async def close(self) -> None:
        if self._channel is None:
            return
        
        channel, self._channel = self._channel, None
        try:
            await self.client.remove_channel(channel)
        finally:
            logger.info(f"Unsubscribed from {self.schema}.{self.table}")
    
    def _handle_change(self, payload: Dict[str, Any]) -> None:
        record = extract_record(payload)
        if record is None:
            logger.warning(f"Ignoring realtime payload without a record: {payload}")
            return
        
        try:
            activity = LeadActivity.model_validate(record)
        except pydantic.ValidationError as e:
            logger.warning(f"Ignoring malformed activity record: {e}")
            return
        
        self.activities.insert(0, activity)
        if self.on_activity is not None:
            self.on_activity(activity)


async def close_realtime(client: AsyncClient) -> None:
    """Close the client's realtime socket; channels must already be removed"""
    try:
        await client.realtime.close()
    except Exception as e:
        logger.warning(f"Failed to close realtime connection: {e}")
