from aiogram import F, Router, html
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message
from pydantic import ValidationError

from core.forms import ProfileEdit, first_error
from handlers.auth import start_login
from keyboards.inline import cancel_kb, language_kb, listing_status_kb, main_menu_kb, profile_kb
from models.constants import LANGUAGES
from services.session import SessionManager


class ProfileFSM(StatesGroup):
    value = State()


FIELD_NAMES = {"display_name": "name", "email": "email"}


def profile_text(session) -> str:
    user = session.user
    license_state = "uploaded" if user.driver_license else "missing"
    return (
        f"👤 <b>{html.quote(user.display_name) or 'No name yet'}</b>\n"
        f"📱 +{html.quote(user.phone_number)}\n"
        f"✉️ {html.quote(user.email) or '—'}\n"
        f"🪪 Driver's license: {license_state}\n"
        f"🌐 Language: {LANGUAGES.get(session.language or 'en')}\n"
        f"{'✅ Verified' if user.is_verified else '⚠️ Profile incomplete'}"
    )


async def show_profile(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    session = sessions.get(callback.message.chat.id)
    if session.user is None:
        await callback.message.delete()
        await start_login(callback.message, state)
        await callback.answer()
        return
    await callback.message.edit_text(profile_text(session), reply_markup=profile_kb())
    await callback.answer()


async def edit_field(callback: CallbackQuery, state: FSMContext):
    field = callback.data.split(":")[2]
    await state.update_data(profile_field=field)
    await state.set_state(ProfileFSM.value)
    await callback.message.edit_text(f"Enter your new {FIELD_NAMES[field]}:", reply_markup=cancel_kb())
    await callback.answer()


async def save_field(message: Message, state: FSMContext, sessions: SessionManager):
    data = await state.get_data()
    field = data.get("profile_field")
    try:
        changes = ProfileEdit(**{field: message.text or ""}).changes()
    except ValidationError as e:
        await message.answer(first_error(e), reply_markup=cancel_kb())
        return

    session = sessions.get(message.chat.id)
    result = await session.update_profile(changes)
    if not result.ok:
        await message.answer("Failed to update your profile. Please try again.", reply_markup=cancel_kb())
        return
    await state.clear()
    await message.answer("✅ Profile updated.\n\n" + profile_text(session), reply_markup=profile_kb())


async def my_listings(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    session = sessions.get(callback.message.chat.id)
    if session.user is None:
        await callback.message.delete()
        await start_login(callback.message, state)
        await callback.answer()
        return

    parts = callback.data.split(":")
    status = parts[2] if len(parts) > 2 else "all"
    result = await session.backend.list_cars_by_owner(session.user.id, status)
    if not result.ok:
        await callback.answer(result.error.message, show_alert=True)
        return

    cars = result.value
    if not cars:
        text = "You have no listings yet." if status == "all" else f"No {status} listings."
    else:
        text = "📋 <b>My listings</b>\n\n" + "\n".join(
            f"• {html.quote(car.title)} ({car.year}) · {car.price:g}/day · {car.status}" for car in cars
        )
    await callback.message.edit_text(text, reply_markup=listing_status_kb(status))
    await callback.answer()


async def change_language(callback: CallbackQuery):
    await callback.message.edit_text("Choose your language / اختر لغتك:", reply_markup=language_kb())
    await callback.answer()


async def logout(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    await state.clear()
    sessions.get(callback.message.chat.id).logout()
    await callback.message.edit_text("👋 Signed out.", reply_markup=main_menu_kb(signed_in=False))
    await callback.answer()


def register_profile_handlers(dp: Router):
    dp.callback_query.register(show_profile, F.data == "menu:profile")
    dp.callback_query.register(my_listings, F.data == "menu:listings")
    dp.callback_query.register(my_listings, F.data.startswith("prof:listings"))
    dp.callback_query.register(edit_field, F.data.in_({"prof:edit:display_name", "prof:edit:email"}))
    dp.callback_query.register(change_language, F.data == "prof:lang")
    dp.callback_query.register(logout, F.data == "prof:logout")
    dp.message.register(save_field, ProfileFSM.value, F.text)
