"""
Rule-to-channel subscriptions.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.database import AsyncSessionLocal, upsert_insert
from app.models.notification_channel import NotificationChannel
from app.models.rule import rule_notifications

logger = logging.getLogger(__name__)


class ChannelDirectory:
    """
    Looks up and manages which channels are linked to which rules.

    Usage:
        directory = ChannelDirectory()
        await directory.link(rule_id=1, channel_id=2)
        channels = await directory.channels_for_rule(1)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def channels_for_rule(self, rule_id: int) -> List[NotificationChannel]:
        """Enabled channels subscribed to a rule, ordered by name."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(NotificationChannel)
                .join(rule_notifications, rule_notifications.c.channel_id == NotificationChannel.id)
                .where(
                    rule_notifications.c.rule_id == rule_id,
                    NotificationChannel.enabled.is_(True),
                )
                .order_by(NotificationChannel.name, NotificationChannel.id)
            )
            return list(result.scalars().all())

    async def get(self, channel_id: int) -> Optional[NotificationChannel]:
        async with self.session_factory() as session:
            return await session.get(NotificationChannel, channel_id)

    async def link(self, rule_id: int, channel_id: int) -> None:
        """Subscribe a channel to a rule. Linking twice is a no-op."""
        async with self.session_factory() as session:
            stmt = upsert_insert(session, rule_notifications).values(
                rule_id=rule_id, channel_id=channel_id
            ).on_conflict_do_nothing(index_elements=["rule_id", "channel_id"])
            await session.execute(stmt)
            await session.commit()

        logger.info(
            f"Linked channel {channel_id} to rule {rule_id}",
            extra={"rule_id": rule_id, "channel_id": channel_id},
        )

    async def unlink(self, rule_id: int, channel_id: int) -> bool:
        """
        Remove a subscription.

        Returns:
            True if a link was removed
        """
        async with self.session_factory() as session:
            result = await session.execute(
                delete(rule_notifications).where(
                    rule_notifications.c.rule_id == rule_id,
                    rule_notifications.c.channel_id == channel_id,
                )
            )
            await session.commit()
        return result.rowcount > 0
