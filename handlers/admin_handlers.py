"""
Administrator commands
"""
import asyncio
import logging
from typing import List, Optional
from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from database.models import Booking, RoomStatus, User
from database.repository import UserRepository
from notifications.messages import ROOM_STATUS_LABELS
from scheduling.errors import SchedulingError
from scheduling.service import SchedulingService
from utils.time_utils import format_date, format_time

logger = logging.getLogger(__name__)
router = Router()

MAX_MESSAGE_LENGTH = 4000


async def get_admin(message: Message) -> Optional[User]:
    """Registered administrator behind the message, or None after replying"""
    user = await asyncio.to_thread(UserRepository.get_by_telegram_id, message.from_user.id)
    if user is None or not user.is_admin:
        logger.warning(f"Admin command refused for Telegram user {message.from_user.id}")
        await message.answer("⚠️ You do not have access to this command")
        return None
    return user


def format_booking(booking: Booking, room_name: str) -> str:
    emergency = "🚨 " if booking.is_emergency else ""
    return (
        f"🔹 {emergency}#{booking.id}\n"
        f"   🕐 {format_time(booking.start_time)} - {format_time(booking.end_time)} ({booking.duration_minutes} min)\n"
        f"   🏥 {room_name} · {booking.department_id}\n"
        f"   🩺 {booking.procedure} ({booking.patient_name})\n"
        f"   👨‍⚕️ {booking.surgeon}\n"
        f"   📌 {booking.status.value}\n\n"
    )


def split_message(header: str, blocks: List[str], footer: str = '') -> List[str]:
    """Split long text into Telegram-sized parts"""
    parts = []
    current = header
    for block in blocks:
        if len(current) + len(block) > MAX_MESSAGE_LENGTH:
            parts.append(current)
            current = block
        else:
            current += block
    parts.append(current + footer)
    return parts


@router.message(Command("today"))
async def cmd_today(message: Message, service: SchedulingService):
    """/today - all of today's bookings"""
    if await get_admin(message) is None:
        return

    today = service.clock().date()
    bookings = service.state.bookings_for(day=today)
    if not bookings:
        await message.answer("📋 No bookings for today")
        return

    blocks = []
    for booking in bookings:
        room = service.state.rooms.get(booking.room_id)
        blocks.append(format_booking(booking, room.name if room else booking.room_id))

    for part in split_message(
        f"📋 Bookings for {format_date(today)}:\n\n", blocks, f"Total: {len(bookings)}"
    ):
        await message.answer(part)


@router.message(Command("board"))
async def cmd_board(message: Message, service: SchedulingService):
    """/board - live status of every room"""
    if await get_admin(message) is None:
        return

    lines = ["🖥 Live board:\n"]
    for entry in service.room_board():
        room = service.state.rooms[entry.room_id]
        line = f"{room.name}: {ROOM_STATUS_LABELS[entry.status.value]}"
        if entry.featured is not None:
            line += f" · {entry.featured.procedure} ({format_time(entry.featured.start_time)})"
        line += f" · {len(entry.queue)} case(s) today"
        lines.append(line)
    await message.answer("\n".join(lines))


@router.message(Command("approve"))
async def cmd_approve(message: Message, command: CommandObject, service: SchedulingService):
    """/approve <id>"""
    admin = await get_admin(message)
    if admin is None:
        return
    if not command.args:
        await message.answer("⚠️ Usage: /approve <id>")
        return

    try:
        booking = await service.approve_booking(command.args.strip(), admin)
    except SchedulingError as e:
        await message.answer(f"⚠️ {e.message}")
        return
    await message.answer(f"✅ Booking #{booking.id} approved")


@router.message(Command("deny"))
async def cmd_deny(message: Message, command: CommandObject, service: SchedulingService):
    """/deny <id> <reason>"""
    admin = await get_admin(message)
    if admin is None:
        return
    parts = (command.args or '').split(maxsplit=1)
    if len(parts) < 2:
        await message.answer("⚠️ Usage: /deny <id> <reason>")
        return

    try:
        booking = await service.deny_booking(parts[0], admin, parts[1])
    except SchedulingError as e:
        await message.answer(f"⚠️ {e.message}")
        return
    await message.answer(f"❌ Booking #{booking.id} denied: {booking.denial_reason}")


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, command: CommandObject, service: SchedulingService):
    """/cancel <id> [reason]"""
    admin = await get_admin(message)
    if admin is None:
        return
    parts = (command.args or '').split(maxsplit=1)
    if not parts:
        await message.answer("⚠️ Usage: /cancel <id> [reason]")
        return

    try:
        booking = await service.cancel_booking(parts[0], admin, parts[1] if len(parts) > 1 else '')
    except SchedulingError as e:
        await message.answer(f"⚠️ {e.message}")
        return
    await message.answer(f"✅ Booking #{booking.id} cancelled")


@router.message(Command("room"))
async def cmd_room(message: Message, command: CommandObject, service: SchedulingService):
    """/room <room_id> <status>"""
    admin = await get_admin(message)
    if admin is None:
        return
    parts = (command.args or '').split()
    statuses = ', '.join(status.value for status in RoomStatus)
    if len(parts) != 2:
        await message.answer(f"⚠️ Usage: /room <room_id> <status>\n\nStatuses: {statuses}")
        return

    try:
        target = RoomStatus(parts[1].lower())
    except ValueError:
        await message.answer(f"⚠️ Unknown status. Statuses: {statuses}")
        return

    try:
        change = await service.change_room_status(parts[0], target, admin)
    except SchedulingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    text = f"✅ {parts[0]}: {ROOM_STATUS_LABELS[change.previous.value]} → {ROOM_STATUS_LABELS[change.status.value]}"
    if change.booking_updates:
        text += "\n" + "\n".join(f"#{b.id}: {b.status.value}" for b in change.booking_updates)
    await message.answer(text)
