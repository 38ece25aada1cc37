from aiogram import Bot, F, Router, html
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message
from loguru import logger
from pydantic import ValidationError

from config import OTP_LENGTH, UPLOAD_TMP_DIR
from core.forms import RegistrationForm, check_email, check_full_name, check_national_id, first_error
from core.result import ErrorKind
from handlers.menu import show_main_menu
from keyboards.inline import cancel_kb, main_menu_kb, otp_kb, skip_kb, terms_kb
from services.session import SessionManager, UserSession


class AuthFSM(StatesGroup):
    phone = State()
    otp = State()
    full_name = State()
    email = State()
    national_id = State()
    terms = State()
    license = State()


def _otp_text(session: UserSession) -> str:
    phone = session.phone_number or ""
    return f"Enter the {OTP_LENGTH}-digit code sent to +{html.quote(phone)}:"


async def _send_otp_prompt(message: Message, session: UserSession):
    prompt = await message.answer(_otp_text(session), reply_markup=otp_kb(session.cooldown))

    async def enable_resend():
        await prompt.edit_reply_markup(reply_markup=otp_kb(session.cooldown))

    if session.timer is not None:
        session.timer.on_expire = enable_resend


# ===== Phone =====
async def start_login(message: Message, state: FSMContext):
    await message.answer("Enter your phone number:", reply_markup=cancel_kb())
    await state.set_state(AuthFSM.phone)


async def login_callback(callback: CallbackQuery, state: FSMContext):
    await callback.message.delete()
    await start_login(callback.message, state)
    await callback.answer()


async def get_phone(message: Message, state: FSMContext, sessions: SessionManager):
    session = sessions.get(message.chat.id)
    result = await session.login(message.text or "")
    if not result.ok:
        if result.error.kind == ErrorKind.VALIDATION:
            await message.answer(result.error.message, reply_markup=cancel_kb())
        else:
            await message.answer("Failed to send verification code. Please try again.", reply_markup=cancel_kb())
        return
    await state.set_state(AuthFSM.otp)
    await _send_otp_prompt(message, session)


# ===== OTP =====
async def get_otp(message: Message, state: FSMContext, sessions: SessionManager):
    session = sessions.get(message.chat.id)
    result = await session.verify(message.text or "")
    if not result.ok:
        kind = result.error.kind
        if kind == ErrorKind.SESSION_EXPIRED:
            session.stop_timer()
            await message.answer("⌛ Verification session expired. Enter your phone number again:",
                                 reply_markup=cancel_kb())
            await state.set_state(AuthFSM.phone)
        elif kind == ErrorKind.VALIDATION:
            await message.answer(result.error.message, reply_markup=otp_kb(session.cooldown))
        else:
            await message.answer("Something went wrong. Please try again.", reply_markup=otp_kb(session.cooldown))
        return

    user = result.value
    if user.is_complete:
        await state.clear()
        await show_main_menu(message, sessions, f"✅ Welcome back, {html.quote(user.display_name)}!")
        return
    await message.answer("✅ Phone verified. Let's finish your profile.\nEnter your full name:",
                         reply_markup=cancel_kb())
    await state.set_state(AuthFSM.full_name)


async def resend_code(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    session = sessions.get(callback.message.chat.id)
    result = await session.resend_code()
    if not result.ok:
        if result.error.kind == ErrorKind.SESSION_EXPIRED:
            await callback.message.edit_text("⌛ Verification session expired. Enter your phone number again:",
                                             reply_markup=cancel_kb())
            await state.set_state(AuthFSM.phone)
        await callback.answer(result.error.message, show_alert=True)
        return
    await callback.answer("A new code has been sent.")
    await callback.message.delete()
    await _send_otp_prompt(callback.message, session)


async def change_phone(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    sessions.get(callback.message.chat.id).stop_timer()
    await callback.message.edit_text("Enter your phone number:", reply_markup=cancel_kb())
    await state.set_state(AuthFSM.phone)
    await callback.answer()


# ===== Registration =====
async def get_full_name(message: Message, state: FSMContext):
    try:
        name = check_full_name(message.text)
    except ValueError as e:
        await message.answer(str(e), reply_markup=cancel_kb())
        return
    await state.update_data(full_name=name)
    await message.answer("Enter your email:", reply_markup=cancel_kb())
    await state.set_state(AuthFSM.email)


async def get_email(message: Message, state: FSMContext):
    try:
        email = check_email(message.text)
    except ValueError as e:
        await message.answer(str(e), reply_markup=cancel_kb())
        return
    await state.update_data(email=email)
    await message.answer("Enter your national ID (10 digits):", reply_markup=cancel_kb())
    await state.set_state(AuthFSM.national_id)


async def get_national_id(message: Message, state: FSMContext):
    try:
        national_id = check_national_id(message.text)
    except ValueError as e:
        await message.answer(str(e), reply_markup=cancel_kb())
        return
    await state.update_data(national_id=national_id)
    await message.answer("Do you accept the terms and conditions?", reply_markup=terms_kb())
    await state.set_state(AuthFSM.terms)


async def terms_answer(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    data = await state.get_data()
    try:
        form = RegistrationForm(
            full_name=data.get("full_name", ""),
            email=data.get("email", ""),
            national_id=data.get("national_id", ""),
            terms_accepted=callback.data == "auth:terms_yes",
        )
    except ValidationError as e:
        await callback.answer(first_error(e), show_alert=True)
        return

    session = sessions.get(callback.message.chat.id)
    result = await session.register(form.to_profile_fields())
    if not result.ok:
        await callback.answer("Failed to create your profile. Please try again.", show_alert=True)
        return

    logger.info(f"User registered: {result.value.id}")
    await callback.message.edit_text(
        "✅ Profile created.\nSend a photo of your driver's license, or skip for now:",
        reply_markup=skip_kb("auth:skip_license"),
    )
    await state.set_state(AuthFSM.license)
    await callback.answer()


async def get_license(message: Message, state: FSMContext, sessions: SessionManager, bot: Bot):
    if not message.photo:
        await message.answer("Send the license as a photo, or skip:", reply_markup=skip_kb("auth:skip_license"))
        return
    session = sessions.get(message.chat.id)
    photo = message.photo[-1]
    UPLOAD_TMP_DIR.mkdir(parents=True, exist_ok=True)
    path = UPLOAD_TMP_DIR / f"license_{message.chat.id}_{photo.file_unique_id}.jpg"
    await bot.download(photo, destination=path)

    result = await session.upload_driver_license(str(path))
    if not result.ok:
        await message.answer("Failed to upload the license. Try again or skip:",
                             reply_markup=skip_kb("auth:skip_license"))
        return
    await state.clear()
    await show_main_menu(message, sessions, "🪪 License saved. You're all set!")


async def skip_license(callback: CallbackQuery, state: FSMContext, sessions: SessionManager):
    await state.clear()
    session = sessions.get(callback.message.chat.id)
    await callback.message.edit_text("You're all set! Main menu:",
                                     reply_markup=main_menu_kb(signed_in=session.user is not None))
    await callback.answer()


def register_auth_handlers(dp: Router):
    dp.callback_query.register(login_callback, F.data == "menu:login")
    dp.message.register(get_phone, AuthFSM.phone, F.text)
    dp.message.register(get_otp, AuthFSM.otp, F.text)
    dp.callback_query.register(resend_code, F.data == "auth:resend", AuthFSM.otp)
    dp.callback_query.register(change_phone, F.data == "auth:change_phone", AuthFSM.otp)
    dp.message.register(get_full_name, AuthFSM.full_name, F.text)
    dp.message.register(get_email, AuthFSM.email, F.text)
    dp.message.register(get_national_id, AuthFSM.national_id, F.text)
    dp.callback_query.register(terms_answer, F.data.in_({"auth:terms_yes", "auth:terms_no"}), AuthFSM.terms)
    dp.message.register(get_license, AuthFSM.license)
    dp.callback_query.register(skip_license, F.data == "auth:skip_license", AuthFSM.license)
