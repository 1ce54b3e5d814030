import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup

# Ответы Telegram, означающие, что пользователя уже нет в группе
_NOT_A_MEMBER_MARKERS = (
    "user not found",
    "participant_id_invalid",
    "user not participant",
    "member not found",
    "user_not_participant",
)


def is_not_a_member_error(error: Exception) -> bool:
    description = getattr(error, "message", None) or str(error)
    normalized = description.lower() if isinstance(description, str) else ""
    return any(marker in normalized for marker in _NOT_A_MEMBER_MARKERS)


class TelegramMessagingService:
    """
    Messaging gateway on top of aiogram Bot.

    Every method reports failure through its return value and never raises,
    so callers can decide whether to retry on the next lifecycle cycle.
    """

    def __init__(self, bot: Bot):
        self.bot = bot

    async def notify(
        self,
        user_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> bool:
        """
        Send a message to the user.

        Args:
            user_id: Telegram user ID (private chat id)
            text: Message text
            reply_markup: Optional inline keyboard

        Returns:
            True if Telegram accepted the message
        """
        try:
            await self.bot.send_message(
                user_id,
                text,
                reply_markup=reply_markup,
                disable_web_page_preview=True,
            )
            return True
        except TelegramAPIError as e:
            logging.error(f"Failed to send message to user {user_id}: {e}")
            return False
        except Exception as e:
            logging.error(f"Unexpected error sending message to user {user_id}: {e}", exc_info=True)
            return False

    async def create_restricted_invite(
        self,
        group_id: int,
        single_use: bool = True,
        expire_hours: int = 12,
    ) -> Optional[str]:
        """
        Create an invite link to the private group.

        Args:
            group_id: Private group/channel ID
            single_use: Limit the link to one member
            expire_hours: Link lifetime in hours

        Returns:
            Invite link URL or None on failure
        """
        expire_date = datetime.now(timezone.utc) + timedelta(hours=expire_hours)
        try:
            invite = await self.bot.create_chat_invite_link(
                chat_id=group_id,
                expire_date=expire_date,
                member_limit=1 if single_use else None,
            )
            return invite.invite_link
        except TelegramAPIError as e:
            logging.error(f"Failed to create invite link for group {group_id}: {e}")
            return None
        except Exception as e:
            logging.error(f"Unexpected error creating invite link for group {group_id}: {e}", exc_info=True)
            return None

    async def remove_member(self, group_id: int, user_id: int) -> bool:
        """
        Remove the user from the private group.

        The user is banned for a minute and immediately unbanned, so a future
        invite link still works. "User not found / not a participant" counts as
        success: the user already has no access.

        Args:
            group_id: Private group/channel ID
            user_id: Telegram user ID

        Returns:
            True if the user has no access anymore
        """
        until_date = datetime.now(timezone.utc) + timedelta(seconds=60)
        try:
            await self.bot.ban_chat_member(chat_id=group_id, user_id=user_id, until_date=until_date)
            await self.bot.unban_chat_member(chat_id=group_id, user_id=user_id, only_if_banned=True)
            logging.info(f"User {user_id} removed from private group {group_id}")
            return True
        except TelegramAPIError as e:
            if is_not_a_member_error(e):
                logging.info(f"User {user_id} is not a member of private group {group_id} anymore")
                return True
            logging.error(f"Failed to remove user {user_id} from private group {group_id}: {e}")
            return False
        except Exception as e:
            logging.error(
                f"Unexpected error removing user {user_id} from private group {group_id}: {e}",
                exc_info=True,
            )
            return False
