from __future__ import annotations

from aiogram import Router, html
from aiogram.filters import Command, CommandStart, ExceptionTypeFilter
from aiogram.types import CallbackQuery, ErrorEvent, InlineKeyboardButton, InlineKeyboardMarkup, Message

from tripshare.config import get_settings
from tripshare.db.models import PromptPayKind
from tripshare.db.repo import get_global_repository
from tripshare.logging import get_logger
from tripshare.services.authz import AuthorizationError
from tripshare.services.promptpay import get_decoder

basic_router = Router()

HELP_TEXT = (
    "<b>Commands</b>\n\n"
    "<b>Trips:</b>\n"
    "/newtrip [name] - create a trip\n"
    "/jointrip [code] - join with a 6-character code\n"
    "/trips - your trips\n"
    "/members [trip_id] - list members\n"
    "/leavetrip [trip_id] - leave a trip\n"
    "/kick [trip_id] | @user - remove a member (owner only)\n\n"
    "<b>Groups:</b>\n"
    "/newgroup [trip_id] | [name] - create a sub-group\n"
    "/groups [trip_id] - list sub-groups\n"
    "/joingroup [group_id], /leavegroup [group_id]\n"
    "/deletegroup [group_id] - delete a sub-group\n\n"
    "<b>Money:</b>\n"
    "/addexpense [trip_id] | [title] | [amount] | all / group [id] / custom @a @b / exact @a=10 @b=5\n"
    "    add <code>| paid by @user</code> when someone else paid\n"
    "/pay [trip_id] | @user | [amount] | [slip url]\n"
    "/payments [trip_id] - recorded payments\n"
    "/expenses [trip_id] - expenses and current shares\n"
    "/balances [trip_id] - who owes whom\n\n"
    "<b>Profile:</b>\n"
    "/promptpay [scanned QR text] - save where you receive payments"
)


def get_main_menu_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="ℹ️ Help", callback_data="menu:help")],
    ])


@basic_router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    user = message.from_user
    if not user:
        return

    repo = get_global_repository()
    await repo.ensure_user(user.id, user.username, user.full_name)
    await message.answer(
        f"👋 Hi, {html.quote(user.first_name)}!\n\n"
        "I keep track of shared trip expenses and tell everyone who owes whom.\n"
        "Start with /newtrip or join a friend's trip with /jointrip.",
        reply_markup=get_main_menu_keyboard(),
    )


@basic_router.callback_query(lambda c: c.data == "menu:help")
async def cb_help_menu(callback: CallbackQuery) -> None:
    if callback.message:
        await callback.message.answer(HELP_TEXT)
    await callback.answer()


@basic_router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(HELP_TEXT)


@basic_router.message(Command("promptpay"))
async def cmd_promptpay(message: Message) -> None:
    user = message.from_user
    if not message.text or not user:
        return

    payload = message.text.partition(" ")[2].strip()
    if not payload:
        await message.answer("Usage: /promptpay [text decoded from your PromptPay QR]")
        return

    decoder = get_decoder(get_settings().promptpay_strict_crc)
    result = decoder.decode(payload)
    if result.id is None:
        await message.answer("❌ Could not find a PromptPay id in this QR.")
        return

    repo = get_global_repository()
    user_id = await repo.ensure_user(user.id, user.username, user.full_name)
    await repo.set_promptpay(user_id, result.id, result.kind)

    get_logger(__name__).info("promptpay.saved", user_id=user_id, kind=result.kind.value)
    text = f"✅ Saved PromptPay {result.kind.value}: {html.quote(result.id)}"
    if result.kind == PromptPayKind.UNKNOWN:
        text += "\nThe id format was not recognised, please double-check it."
    await message.answer(text)


@basic_router.errors(ExceptionTypeFilter(AuthorizationError))
async def on_authorization_error(event: ErrorEvent) -> None:
    message = event.update.message
    if message:
        await message.answer(f"⛔ {event.exception}")
