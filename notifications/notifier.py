"""
Notification delivery: in-app records plus Telegram messages
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from aiogram import Bot

from config import settings
from database.models import ADMIN_ROLES, NotificationRecord, User
from database.repository import NotificationRepository, UserRepository
from notifications.messages import render
from scheduling.ports import Audience, NotificationKind

logger = logging.getLogger(__name__)


class BotNotifier:
    """
    Resolves an audience to users, stores one notification per user and
    sends the text over Telegram when a bot is attached.

    Admin audiences also reach the chats listed in ADMIN_CHAT_IDS.
    """

    def __init__(self, bot: Optional[Bot] = None):
        self.bot = bot

    async def notify(self, kind: NotificationKind, audience: Audience, payload: Dict[str, Any]) -> None:
        title, message = render(kind, payload)
        recipients: List[User] = await asyncio.to_thread(
            UserRepository.get_recipients,
            audience.user_ids,
            audience.departments,
            audience.roles,
            audience.all_active
        )

        now = datetime.now()
        for user in recipients:
            await asyncio.to_thread(NotificationRepository.add, NotificationRecord(
                id=None,
                user_id=user.id,
                kind=NotificationKind(kind).value,
                title=title,
                message=message,
                related_booking_id=payload.get('booking_id'),
                created_at=now
            ))

        if self.bot is None:
            return

        chat_ids = [user.telegram_id for user in recipients if user.telegram_id]
        if audience.all_active or ADMIN_ROLES & set(audience.roles):
            chat_ids.extend(settings.ADMIN_CHAT_IDS)

        text = f"{title}\n\n{message}"
        for chat_id in dict.fromkeys(chat_ids):
            try:
                await self.bot.send_message(chat_id, text)
            except Exception as e:
                logger.error(f"Failed to notify chat {chat_id}: {e}")

        logger.info(f"Sent {NotificationKind(kind).value} to {len(recipients)} user(s)")
