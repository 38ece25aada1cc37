from aiogram import Bot, F, Router, html
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message
from loguru import logger

from config import UPLOAD_TMP_DIR
from core.draft import ListingDraftBuilder, Move
from core.result import ErrorKind
from handlers.auth import start_login
from keyboards.inline import main_menu_kb, wizard_kb
from models.constants import AVAILABLE_FEATURES, CAR_MAKES, FUEL_TYPES, TRANSMISSIONS
from services.session import SessionManager


class ListingFSM(StatesGroup):
    editing = State()


PROMPTS = {
    "make": "Enter the make (or pick one below):",
    "model": "Enter the model:",
    "year": "Enter the year, e.g. 2020:",
    "color": "Enter the color:",
    "seats": "How many seats?",
    "doors": "How many doors?",
    "mileage_limit": "Daily mileage limit in km:",
    "description": "Describe your car:",
    "price_per_day": "Price per day:",
    "weekly_discount": "Weekly discount in %:",
    "monthly_discount": "Monthly discount in %:",
    "address": "Enter the pick-up address:",
    "minimum_age": "Minimum driver age:",
}

CYCLES = {"transmission": TRANSMISSIONS, "fuel_type": FUEL_TYPES}


def _awaited_field(builder: ListingDraftBuilder, awaiting: str | None) -> str | None:
    if awaiting:
        return awaiting
    for name in builder.missing_fields():
        if name in PROMPTS:
            return name
    return None


def _step_body(builder: ListingDraftBuilder) -> str:
    d = builder.draft
    step = builder.step
    if step == "details":
        return (
            f"Make: {html.quote(d.make) or '—'}\nModel: {html.quote(d.model) or '—'}\n"
            f"Year: {d.year or '—'}\nColor: {html.quote(d.color) or '—'}\n"
            f"Seats: {d.seats}, doors: {d.doors}, mileage limit: {d.mileage_limit} km"
        )
    if step == "photos":
        return f"Photos: {len(d.images)}/{builder.max_photos}\nSend photos of your car, the first one is the cover."
    if step == "pricing":
        return (
            f"Price per day: {d.price_per_day or '—'}\n"
            f"Weekly discount: {d.weekly_discount}%\nMonthly discount: {d.monthly_discount}%"
        )
    if step == "location":
        coordinates = f"{d.latitude}, {d.longitude}" if d.latitude and d.longitude else "not set"
        return (
            f"Address: {html.quote(d.address) or '—'}\nMap pin: {coordinates}\n"
            "You can also share a location pin."
        )
    if step == "features":
        return "Select the features your car has:"
    if step == "rules":
        return "Set the rules for renters:"
    return html.quote(builder.summary())


def _render(builder: ListingDraftBuilder, awaiting: str | None = None) -> str:
    text = f"<b>{builder.title}</b> · {builder.progress}\n\n{_step_body(builder)}"
    field = _awaited_field(builder, awaiting)
    if field:
        text += f"\n\n✏️ {PROMPTS[field]}"
    return text


async def _show(target: Message, builder: ListingDraftBuilder, state: FSMContext, edit: bool = False):
    data = await state.get_data()
    awaiting = data.get("awaiting")
    text = _render(builder, awaiting)
    markup = wizard_kb(builder, _awaited_field(builder, awaiting))
    if edit:
        await target.edit_text(text, reply_markup=markup)
    else:
        await target.answer(text, reply_markup=markup)


# ===== Start / cancel =====
async def start_listing(message: Message, state: FSMContext, sessions: SessionManager):
    session = sessions.get(message.chat.id)
    if session.user is None or not session.user.is_complete:
        await message.answer("⚠️ Sign in and complete your profile to list a car.")
        await start_login(message, state)
        return
    builder = session.start_listing()
    await state.set_state(ListingFSM.editing)
    await state.update_data(awaiting=None)
    await _show(message, builder, state)


async def start_listing_callback(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    await callback.message.delete()
    await start_listing(callback.message, state, sessions)
    await callback.answer()


async def _finish(callback: CallbackQuery, state: FSMContext, sessions: SessionManager, text: str):
    session = sessions.get(callback.message.chat.id)
    session.discard_listing()
    await state.clear()
    await callback.message.edit_text(text, reply_markup=main_menu_kb(signed_in=session.user is not None))


async def cancel_listing(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    await _finish(callback, state, sessions, "Listing discarded.")
    await callback.answer()


# ===== Input =====
async def get_text(message: Message, state: FSMContext, sessions: SessionManager):
    builder = sessions.get(message.chat.id).listing
    if builder is None:
        await state.clear()
        await message.answer("No listing in progress.", reply_markup=main_menu_kb(signed_in=True))
        return

    data = await state.get_data()
    field = _awaited_field(builder, data.get("awaiting"))
    if field is None:
        await message.answer("Use the buttons below to continue.")
        await _show(message, builder, state)
        return

    error = builder.set_field(field, message.text)
    if error:
        await message.answer(error)
        return
    await state.update_data(awaiting=None)
    await _show(message, builder, state)


async def get_photo(message: Message, state: FSMContext, sessions: SessionManager, bot: Bot):
    builder = sessions.get(message.chat.id).listing
    if builder is None or builder.step != "photos":
        await message.answer("Photos can be added on the Photos step.")
        return
    if len(builder.draft.images) >= builder.max_photos:
        return

    photo = message.photo[-1]
    UPLOAD_TMP_DIR.mkdir(parents=True, exist_ok=True)
    path = UPLOAD_TMP_DIR / f"{message.chat.id}_{photo.file_unique_id}.jpg"
    await bot.download(photo, destination=path)
    builder.add_image(str(path))
    await _show(message, builder, state)


async def get_location(message: Message, state: FSMContext, sessions: SessionManager):
    builder = sessions.get(message.chat.id).listing
    if builder is None:
        return
    builder.set_coordinates(message.location.latitude, message.location.longitude)
    await _show(message, builder, state)


# ===== Buttons =====
async def wizard_callback(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    session = sessions.get(callback.message.chat.id)
    builder = session.listing
    if builder is None:
        await callback.answer("No listing in progress.", show_alert=True)
        return

    parts = callback.data.split(":")
    action = parts[1]

    if action == "next":
        move = builder.next()
        if move == Move.BLOCKED:
            missing = ", ".join(name.replace("_", " ") for name in builder.missing_fields())
            await callback.answer(f"Please fill in: {missing}", show_alert=True)
            return
        if move == Move.SUBMIT:
            await submit_listing(callback, state, sessions)
            return
        await state.update_data(awaiting=None)
    elif action == "back":
        if builder.back() == Move.EXIT:
            await _finish(callback, state, sessions, "Listing discarded.")
            await callback.answer()
            return
        await state.update_data(awaiting=None)
    elif action == "edit":
        field = parts[2]
        if field not in PROMPTS:
            await callback.answer()
            return
        await state.update_data(awaiting=field)
    elif action == "make":
        builder.set_field("make", CAR_MAKES[int(parts[2])])
        await state.update_data(awaiting=None)
    elif action == "cycle":
        field = parts[2]
        options = CYCLES[field]
        current = getattr(builder.draft, field)
        builder.set_field(field, options[(options.index(current) + 1) % len(options)])
    elif action == "instant":
        builder.toggle_instant_booking()
    elif action == "feat":
        builder.toggle_feature(AVAILABLE_FEATURES[int(parts[2])])
    elif action == "rule":
        name = parts[2]
        builder.set_rule(name, not getattr(builder.draft, name))
    elif action == "rmphoto":
        builder.remove_image(len(builder.draft.images) - 1)

    await _show(callback.message, builder, state, edit=True)
    await callback.answer()


async def submit_listing(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    session = sessions.get(callback.message.chat.id)
    if session.listing is not None and session.listing.submitting:
        await callback.answer("Already submitting, please wait.")
        return

    await callback.answer("Submitting…")
    result = await session.submit_listing()
    if result.ok:
        await state.clear()
        await callback.message.edit_text(
            "🎉 Your car listing has been submitted for review.",
            reply_markup=main_menu_kb(signed_in=True),
        )
        return

    if result.error.kind == ErrorKind.BUSY:
        return
    logger.error(f"Listing submit failed for chat {callback.message.chat.id}: {result.error.message}")
    if session.listing is None:
        await _finish(callback, state, sessions, f"❌ {result.error.message}")
        return
    await callback.message.answer(f"❌ {result.error.message}\nFailed to submit listing. Please try again.")
    await _show(callback.message, session.listing, state)


def register_listing_handlers(dp: Router):
    dp.callback_query.register(start_listing_callback, F.data == "menu:add")
    dp.callback_query.register(cancel_listing, F.data == "lst:cancel", ListingFSM.editing)
    dp.callback_query.register(wizard_callback, F.data.startswith("lst:"), ListingFSM.editing)
    dp.message.register(get_photo, ListingFSM.editing, F.photo)
    dp.message.register(get_location, ListingFSM.editing, F.location)
    dp.message.register(get_text, ListingFSM.editing, F.text)

