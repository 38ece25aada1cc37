import math

from aiogram import F, Router, html
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, LinkPreviewOptions, Message

from core.listing import CarListing
from core.query import SearchQuery
from keyboards.inline import car_detail_kb, filters_kb, results_kb
from models.constants import AVAILABLE_FEATURES, SORT_KEYS
from services.session import SessionManager


NO_PREVIEW = LinkPreviewOptions(is_disabled=True)


class SearchFSM(StatesGroup):
    text = State()
    number = State()


NUMBER_PROMPTS = {
    "price_min": "Minimum price per day (send 0 to clear):",
    "price_max": "Maximum price per day (send 0 to clear):",
    "max_distance": "Maximum distance in km (send 0 to clear):",
}


def results_text(cars: list[CarListing], query: SearchQuery) -> str:
    header = f"🔎 <b>{len(cars)} cars</b>"
    if query.text:
        header += f" for “{html.quote(query.text)}”"
    header += f" · sorted by {query.sort_key}"
    if not cars:
        return header + "\n\nNo cars match your search. Try removing some filters."
    lines = [header, ""]
    for i, car in enumerate(cars, 1):
        badge = " ⚡" if car.instant_booking else ""
        lines.append(
            f"{i}. {html.quote(car.title)} ({car.year}) · {car.price:g}/day · "
            f"{car.distance:g} km · ★{car.rating:g} ({car.review_count}){badge}"
        )
    lines.append("\nType a make or model to search again.")
    return "\n".join(lines)


def car_text(car: CarListing) -> str:
    s, r = car.specifications, car.rules
    yes_no = {True: "allowed", False: "not allowed"}
    lines = [
        f"<b>{html.quote(car.title)}</b> ({car.year}, {html.quote(car.color)})",
        f"💰 {car.price:g} per day" + (" · ⚡ Instant booking" if car.instant_booking else ""),
        f"★ {car.rating:g} ({car.review_count} reviews) · 📍 {html.quote(car.location.address)} · {car.distance:g} km",
        "",
        f"⚙️ {s.transmission}, {s.fuel_type}, {s.seats} seats, {s.doors} doors, {s.mileage_limit} km/day",
        f"✨ {html.quote(', '.join(sorted(car.features))) or 'No extra features'}",
        f"🚭 Smoking {yes_no[r.smoking]} · 🐾 Pets {yes_no[r.pets]} · "
        f"👥 Additional drivers {yes_no[r.additional_drivers]} · Minimum age {r.minimum_age}",
    ]
    if car.weekly_discount or car.monthly_discount:
        lines.insert(2, f"🏷 Weekly -{car.weekly_discount:g}%, monthly -{car.monthly_discount:g}%")
    if car.description:
        lines.insert(3, html.quote(car.description))
    if car.primary_image:
        lines.append(f'\n<a href="{html.quote(car.primary_image)}">📷 Photos ({len(car.images)})</a>')
    return "\n".join(lines)


async def _results(sessions: SessionManager, chat_id: int) -> tuple[str, object]:
    session = sessions.get(chat_id)
    result = await session.backend.list_cars(session.query)
    if not result.ok:
        return f"❌ {result.error.message}", results_kb([], session.query)
    return results_text(result.value, session.query), results_kb(result.value, session.query)


async def start_search(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    text, markup = await _results(sessions, callback.message.chat.id)
    await callback.message.edit_text(text, reply_markup=markup, link_preview_options=NO_PREVIEW)
    await state.set_state(SearchFSM.text)
    await callback.answer()


async def search_text(message: Message, state: FSMContext, sessions: SessionManager):
    session = sessions.get(message.chat.id)
    session.query = session.query.with_changes(text=(message.text or "").strip())
    text, markup = await _results(sessions, message.chat.id)
    await message.answer(text, reply_markup=markup, link_preview_options=NO_PREVIEW)


async def search_number(message: Message, state: FSMContext, sessions: SessionManager):
    data = await state.get_data()
    field = data.get("search_field")
    try:
        value = float((message.text or "").replace(",", "."))
        if not math.isfinite(value) or value < 0:
            raise ValueError
    except ValueError:
        await message.answer("Enter a number, or 0 to clear.")
        return
    session = sessions.get(message.chat.id)
    session.query = session.query.with_changes(**{field: value or None})
    await state.set_state(SearchFSM.text)
    await message.answer("⚙️ Filters:", reply_markup=filters_kb(session.query))


async def search_callback(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    session = sessions.get(callback.message.chat.id)
    parts = callback.data.split(":")
    action = parts[1]
    query = session.query

    if action == "sort" and parts[2] in SORT_KEYS:
        session.query = query.with_changes(sort_key=parts[2])
    elif action == "run":
        pass
    elif action == "edit" and parts[2] in NUMBER_PROMPTS:
        await state.update_data(search_field=parts[2])
        await state.set_state(SearchFSM.number)
        await callback.message.edit_text(NUMBER_PROMPTS[parts[2]])
        await callback.answer()
        return
    else:
        if action == "instant":
            session.query = query.with_changes(instant_booking_only=not query.instant_booking_only)
        elif action == "feat":
            feature = AVAILABLE_FEATURES[int(parts[2])]
            session.query = query.with_changes(required_features=query.required_features ^ {feature})
        elif action == "clear":
            session.query = SearchQuery(text=query.text, sort_key=query.sort_key)
        await callback.message.edit_text("⚙️ Filters:", reply_markup=filters_kb(session.query))
        await callback.answer()
        return

    await state.set_state(SearchFSM.text)
    text, markup = await _results(sessions, callback.message.chat.id)
    await callback.message.edit_text(text, reply_markup=markup, link_preview_options=NO_PREVIEW)
    await callback.answer()


async def show_car(callback: CallbackQuery, sessions: SessionManager):
    car_id = callback.data.split(":", 1)[1]
    session = sessions.get(callback.message.chat.id)
    result = await session.backend.get_car(car_id)
    if not result.ok:
        await callback.answer(result.error.message, show_alert=True)
        return
    await callback.message.edit_text(car_text(result.value), reply_markup=car_detail_kb())
    await callback.answer()


def register_search_handlers(dp: Router):
    dp.callback_query.register(start_search, F.data == "menu:search")
    dp.callback_query.register(search_callback, F.data.startswith("srch:"))
    dp.callback_query.register(show_car, F.data.startswith("car:"))
    dp.message.register(search_text, SearchFSM.text, F.text)
    dp.message.register(search_number, SearchFSM.number, F.text)
