"""
Notification channel admin endpoints.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.database import get_session_factory
from app.models.admin import ChannelTestResponse
from app.modules.notifications.channels import ChannelDirectory
from app.modules.notifications.dispatcher import NotificationDispatcher, NotificationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


@router.post("/channels/{channel_id}/test", response_model=ChannelTestResponse)
async def test_channel(
    channel_id: int,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Send a synthetic test alert through one channel.

    Works for disabled channels too, so a channel can be verified before it
    is switched on.

    Returns:
        200 {"status": "sent"} on delivery

    Raises:
        HTTPException 404: Unknown channel
        HTTPException 502: Delivery failed (detail carries the channel error)
    """
    channel = await ChannelDirectory(session_factory).get(channel_id)
    if channel is None:
        raise HTTPException(status_code=404, detail=f"Notification channel {channel_id} not found")

    try:
        await dispatcher.test_channel(channel)
    except NotificationError as e:
        logger.warning(
            f"Test notification failed for channel {channel.name}",
            extra={"channel_id": channel_id, "channel_type": channel.channel_type},
        )
        raise HTTPException(status_code=502, detail=str(e))

    logger.info(
        f"Test notification sent to channel {channel.name}",
        extra={"channel_id": channel_id, "channel_type": channel.channel_type},
    )
    return ChannelTestResponse(status="sent")
