from aiogram import F, Router, html
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from loguru import logger

from core.query import home_sections
from keyboards.inline import language_kb, main_menu_kb, button
from models.constants import LANGUAGES
from services.session import SessionManager

ONBOARDING = (
    "🚗 <b>Rent cars from people nearby</b>\n"
    "Pick from hundreds of cars shared by their owners.\n\n"
    "💰 <b>Earn from your car</b>\n"
    "List your car in a few steps and set your own price.\n\n"
    "🔒 <b>Safe and verified</b>\n"
    "Every user signs in with a verified phone number."
)

SECTION_TITLES = {"nearby": "📍 Nearby", "featured": "⭐ Featured", "popular": "🔥 Popular"}


async def show_main_menu(message: Message, sessions: SessionManager, text: str = "Main menu:"):
    session = sessions.get(message.chat.id)
    await message.answer(text, reply_markup=main_menu_kb(signed_in=session.user is not None))


# /start: language choice on first visit, then the menu
async def start_command(message: Message, state: FSMContext, sessions: SessionManager):
    await state.clear()
    session = sessions.get(message.chat.id)
    session.close()
    if not session.language:
        await message.answer("Choose your language / اختر لغتك:", reply_markup=language_kb())
        return
    await show_main_menu(message, sessions, "Welcome back! Main menu:")


async def menu_command(message: Message, state: FSMContext, sessions: SessionManager):
    await state.clear()
    sessions.get(message.chat.id).close()
    await show_main_menu(message, sessions)


async def choose_language(callback: CallbackQuery, sessions: SessionManager):
    code = callback.data.split(":")[1]
    if code not in LANGUAGES:
        await callback.answer("Unknown language.", show_alert=True)
        return
    session = sessions.get(callback.message.chat.id)
    first_visit = session.language is None
    session.set_language(code)
    logger.info(f"Chat {callback.message.chat.id} language: {code}")
    if first_visit:
        await callback.message.edit_text(ONBOARDING)
        await show_main_menu(callback.message, sessions)
    else:
        await callback.message.edit_text(f"Language: {LANGUAGES[code]}",
                                          reply_markup=main_menu_kb(signed_in=session.user is not None))
    await callback.answer()


async def show_home(callback: CallbackQuery, sessions: SessionManager):
    session = sessions.get(callback.message.chat.id)
    result = await session.backend.list_cars()
    if not result.ok:
        await callback.answer(result.error.message, show_alert=True)
        return

    kb = InlineKeyboardBuilder()
    lines = []
    for key, cars in home_sections(result.value).items():
        if not cars:
            continue
        lines.append(f"<b>{SECTION_TITLES[key]}</b>")
        for car in cars:
            lines.append(f"• {html.quote(car.title)} · {car.price:g}/day · {car.distance:g} km · ★{car.rating:g}")
            if key == "featured":
                kb.row(button(f"⭐ {car.title}", f"car:{car.id}"))
        lines.append("")
    kb.row(button("🔎 Search all cars", "menu:search"), button("⬅️ Main menu", "menu:main"))
    await callback.message.edit_text("\n".join(lines) or "No cars yet.", reply_markup=kb.as_markup())
    await callback.answer()


async def back_to_main(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    await state.clear()
    session = sessions.get(callback.message.chat.id)
    session.close()
    await callback.message.edit_text("Main menu:", reply_markup=main_menu_kb(signed_in=session.user is not None))
    await callback.answer()


async def cancel_handler(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    await state.clear()
    session = sessions.get(callback.message.chat.id)
    session.close()
    await callback.message.edit_text("❌ Cancelled.", reply_markup=main_menu_kb(signed_in=session.user is not None))
    await callback.answer()


def register_menu_handlers(dp: Router):
    dp.message.register(start_command, CommandStart())
    dp.message.register(menu_command, Command("menu"))
    dp.callback_query.register(choose_language, F.data.startswith("lang:"))
    dp.callback_query.register(show_home, F.data == "menu:home")
    dp.callback_query.register(back_to_main, F.data == "menu:main")
    dp.callback_query.register(cancel_handler, F.data == "cancel")
