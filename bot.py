import asyncio
import logging

from aiogram import Bot, Dispatcher, F, Router
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest, TelegramForbiddenError
from aiogram.filters import Command
from aiogram.types import (
    BotCommand,
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Message,
)

from config import ConfigError, load_config
from matchmaking import Gender
import messages
from sessions import Keyboard, Notification, SessionController

logger = logging.getLogger(__name__)

router = Router()

# Callback data
GENDER_MALE = "gender_male"
GENDER_FEMALE = "gender_female"
START_CHAT = "start_chat"

CALLBACK_GENDERS = {
    GENDER_MALE: Gender.MALE,
    GENDER_FEMALE: Gender.FEMALE,
}

BOT_COMMANDS = [
    BotCommand(command="start", description="🔥 Start an anonymous chat"),
    BotCommand(command="stop", description="🛑 End the chat"),
    BotCommand(command="next", description="➡️ Find a new partner"),
    BotCommand(command="cancel", description="❌ Stop searching"),
    BotCommand(command="help", description="ℹ️ Help"),
]


# Keyboards
def get_gender_keyboard():
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text=messages.GENDER_LABELS["male"], callback_data=GENDER_MALE),
        InlineKeyboardButton(text=messages.GENDER_LABELS["female"], callback_data=GENDER_FEMALE),
    ]])


def get_start_keyboard():
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="🔥 Start Chat", callback_data=START_CHAT),
    ]])


KEYBOARDS = {
    Keyboard.GENDER: get_gender_keyboard,
    Keyboard.START: get_start_keyboard,
}


class TelegramNotifier:
    """Delivers notifications through the bot. Failures are logged, never raised."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def __call__(self, notification: Notification):
        kwargs = {}
        if notification.keyboard is not None:
            kwargs["reply_markup"] = KEYBOARDS[notification.keyboard]()
        if notification.raw:
            kwargs["parse_mode"] = None

        try:
            await self.bot.send_message(notification.user_id, notification.text, **kwargs)
        except (TelegramForbiddenError, TelegramBadRequest) as e:
            logger.warning(f"Failed to notify {notification.user_id}: {e}")
        except TelegramAPIError as e:
            logger.error(f"Telegram error while notifying {notification.user_id}: {e}")


# Handlers
@router.message(Command("start"))
async def send_welcome(message: Message, controller: SessionController):
    await controller.begin(message.from_user.id)


@router.message(Command("help"))
async def show_help(message: Message):
    await message.answer(messages.HELP_MSG)


@router.message(Command("stop"))
async def end_chat(message: Message, controller: SessionController):
    await controller.end_session(message.from_user.id)


@router.message(Command("next"))
async def next_partner(message: Message, controller: SessionController):
    await controller.next_partner(message.from_user.id)


@router.message(Command("cancel"))
async def cancel_search(message: Message, controller: SessionController):
    await controller.cancel_search(message.from_user.id)


@router.callback_query(F.data.in_(set(CALLBACK_GENDERS)))
async def choose_gender(query: CallbackQuery, controller: SessionController):
    await controller.declare_category(query.from_user.id, CALLBACK_GENDERS[query.data])
    await close_keyboard(query)


@router.callback_query(F.data == START_CHAT)
async def start_search(query: CallbackQuery, controller: SessionController):
    await controller.start_search(query.from_user.id)
    await close_keyboard(query)


@router.message(F.text)
async def forward_message(message: Message, controller: SessionController):
    await controller.relay(message.from_user.id, message.text)


@router.message()
async def block_non_text(message: Message):
    await message.reply(messages.TEXT_ONLY_MSG)


async def close_keyboard(query: CallbackQuery):
    # Buttons are one-shot: acknowledge the click and drop the prompt
    try:
        await query.answer()
    except TelegramAPIError as e:
        logger.warning(f"Could not answer callback from {query.from_user.id}: {e}")
    if query.message is None:
        return
    try:
        await query.bot.delete_message(query.message.chat.id, query.message.message_id)
    except TelegramAPIError as e:
        logger.warning(f"Could not delete keyboard message for {query.from_user.id}: {e}")


async def set_bot_commands(bot: Bot):
    try:
        await bot.set_my_commands(BOT_COMMANDS)
    except TelegramAPIError as e:
        logger.warning(f"Failed to set commands: {e}")


def create_dispatcher(controller: SessionController) -> Dispatcher:
    dp = Dispatcher()
    dp["controller"] = controller
    dp.include_router(router)
    return dp


async def main():
    try:
        config = load_config()
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.critical(str(e))
        raise SystemExit(1) from e

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    bot = Bot(token=config.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    controller = SessionController(TelegramNotifier(bot))
    dp = create_dispatcher(controller)

    await set_bot_commands(bot)
    await bot.delete_webhook(drop_pending_updates=config.skip_updates)

    logger.info("✅ Bot is running...")
    try:
        await dp.start_polling(bot)
    finally:
        logger.info(f"Bot stopped, final stats: {controller.stats()}")


def run():
    asyncio.run(main())


if __name__ == '__main__':
    run()
