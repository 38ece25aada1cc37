from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from core.draft import ListingDraftBuilder
from core.otp import OtpCooldown
from core.query import SearchQuery
from models.constants import AVAILABLE_FEATURES, CAR_MAKES, LANGUAGES, SORT_KEYS


def button(text: str, data: str) -> InlineKeyboardButton:
    return InlineKeyboardButton(text=text, callback_data=data)


def main_menu_kb(signed_in: bool = False):
    kb = InlineKeyboardBuilder()
    kb.add(
        button("🏠 Home", "menu:home"),
        button("🔎 Search cars", "menu:search"),
        button("🚗 List your car", "menu:add"),
        button("📋 My listings", "menu:listings"),
    )
    if signed_in:
        kb.add(button("👤 Profile", "menu:profile"))
    else:
        kb.add(button("📱 Sign in", "menu:login"))
    kb.adjust(2)
    return kb.as_markup()


def language_kb():
    kb = InlineKeyboardBuilder()
    for code, name in LANGUAGES.items():
        kb.add(button(name, f"lang:{code}"))
    return kb.as_markup()


def cancel_kb():
    return InlineKeyboardMarkup(inline_keyboard=[[button("❌ Cancel", "cancel")]])


def otp_kb(cooldown: OtpCooldown):
    if cooldown.can_resend:
        resend = button("🔁 Resend code", "auth:resend")
    else:
        resend = button(f"🔁 Resend code ({cooldown.remaining} s)", "auth:resend")
    return InlineKeyboardMarkup(inline_keyboard=[
        [resend],
        [button("✏️ Change number", "auth:change_phone"), button("❌ Cancel", "cancel")],
    ])


def terms_kb():
    return InlineKeyboardMarkup(inline_keyboard=[[
        button("✅ I accept", "auth:terms_yes"),
        button("❌ Decline", "auth:terms_no"),
    ]])


def skip_kb(data: str):
    return InlineKeyboardMarkup(inline_keyboard=[[button("Skip", data), button("❌ Cancel", "cancel")]])


# ===== Search =====

def results_kb(cars, query: SearchQuery):
    kb = InlineKeyboardBuilder()
    for car in cars:
        kb.row(button(f"{car.title} · {car.price:g}/day", f"car:{car.id}"))
    sort_row = [
        button(("• " if query.sort_key == key else "") + key.capitalize(), f"srch:sort:{key}")
        for key in SORT_KEYS
    ]
    kb.row(*sort_row)
    filters = "⚙️ Filters" + (f" ({query.active_filters})" if query.active_filters else "")
    kb.row(button(filters, "srch:filters"), button("⬅️ Main menu", "menu:main"))
    return kb.as_markup()


def filters_kb(query: SearchQuery):
    def value(v):
        return "any" if v is None else f"{v:g}"

    kb = InlineKeyboardBuilder()
    kb.row(
        button(f"Min price: {value(query.price_min)}", "srch:edit:price_min"),
        button(f"Max price: {value(query.price_max)}", "srch:edit:price_max"),
    )
    kb.row(button(f"Max distance: {value(query.max_distance)} km", "srch:edit:max_distance"))
    kb.row(button(("✅" if query.instant_booking_only else "⬜") + " Instant booking only", "srch:instant"))
    for i, feature in enumerate(AVAILABLE_FEATURES):
        mark = "✅" if feature in query.required_features else "⬜"
        kb.add(button(f"{mark} {feature}", f"srch:feat:{i}"))
    kb.adjust(2, 1, 1, *([2] * ((len(AVAILABLE_FEATURES) + 1) // 2)))
    kb.row(button("🧹 Clear", "srch:clear"), button("🔎 Show results", "srch:run"))
    return kb.as_markup()


def car_detail_kb():
    return InlineKeyboardMarkup(inline_keyboard=[[
        button("⬅️ Results", "srch:run"),
        button("⬅️ Main menu", "menu:main"),
    ]])


# ===== Listing wizard =====

def makes_kb():
    kb = InlineKeyboardBuilder()
    for i, make in enumerate(CAR_MAKES):
        kb.add(button(make, f"lst:make:{i}"))
    kb.adjust(3)
    return kb


def wizard_kb(builder: ListingDraftBuilder, awaiting: str | None = None):
    d = builder.draft
    step = builder.step
    kb = makes_kb() if awaiting == "make" else InlineKeyboardBuilder()

    def flag(on: bool) -> str:
        return "✅" if on else "⬜"

    if step == "details":
        kb.row(button(f"Transmission: {d.transmission}", "lst:cycle:transmission"),
               button(f"Fuel: {d.fuel_type}", "lst:cycle:fuel_type"))
        kb.row(button("Make", "lst:edit:make"), button("Model", "lst:edit:model"),
               button("Year", "lst:edit:year"), button("Color", "lst:edit:color"))
        kb.row(button("Seats", "lst:edit:seats"), button("Doors", "lst:edit:doors"),
               button("Mileage limit", "lst:edit:mileage_limit"))
        kb.row(button("Description", "lst:edit:description"))
    elif step == "photos":
        if d.images:
            kb.row(button("🗑 Remove last photo", "lst:rmphoto"))
    elif step == "pricing":
        kb.row(button("Price per day", "lst:edit:price_per_day"))
        kb.row(button("Weekly discount %", "lst:edit:weekly_discount"),
               button("Monthly discount %", "lst:edit:monthly_discount"))
        kb.row(button(f"{flag(d.instant_booking)} Instant booking", "lst:instant"))
    elif step == "location":
        kb.row(button("Address", "lst:edit:address"))
    elif step == "features":
        features = InlineKeyboardBuilder()
        for i, feature in enumerate(AVAILABLE_FEATURES):
            features.add(button(f"{flag(feature in d.features)} {feature}", f"lst:feat:{i}"))
        features.adjust(2)
        kb.attach(features)
    elif step == "rules":
        kb.row(button(f"{flag(d.smoking)} Smoking", "lst:rule:smoking"),
               button(f"{flag(d.pets)} Pets", "lst:rule:pets"))
        kb.row(button(f"{flag(d.additional_drivers)} Additional drivers", "lst:rule:additional_drivers"))
        kb.row(button(f"Minimum age: {d.minimum_age or '—'}", "lst:edit:minimum_age"))

    forward = button("✅ Submit", "lst:next") if step == "review" else button("Next ➡️", "lst:next")
    kb.row(button("⬅️ Back", "lst:back"), forward)
    kb.row(button("❌ Cancel", "lst:cancel"))
    return kb.as_markup()


# ===== Profile =====

def profile_kb():
    return InlineKeyboardMarkup(inline_keyboard=[
        [button("✏️ Name", "prof:edit:display_name"), button("✏️ Email", "prof:edit:email")],
        [button("📋 My listings", "prof:listings:all"), button("🌐 Language", "prof:lang")],
        [button("🚪 Sign out", "prof:logout"), button("⬅️ Main menu", "menu:main")],
    ])


def listing_status_kb(selected: str):
    kb = InlineKeyboardBuilder()
    for status in ("all", "active", "inactive", "pending"):
        text = ("• " if status == selected else "") + status.capitalize()
        kb.add(button(text, f"prof:listings:{status}"))
    kb.adjust(4)
    kb.row(button("🚗 List your car", "menu:add"), button("⬅️ Main menu", "menu:main"))
    return kb.as_markup()
