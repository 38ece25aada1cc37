import asyncio
from pathlib import Path
from typing import Awaitable, Callable

from loguru import logger

from config import LOCAL_STATE_DIR, MAX_LISTING_PHOTOS, OTP_COOLDOWN_SECONDS, OTP_LENGTH
from core.draft import ListingDraftBuilder
from core.forms import normalize_phone
from core.listing import UserRecord
from core.otp import CooldownTimer, OtpCooldown
from core.query import SearchQuery
from core.result import Err, ErrorKind, Ok, Result
from services.backend import Backend
from services.local_store import LocalStore

Callback = Callable[[], Awaitable[None]]


def _is_remote(uri: str) -> bool:
    return uri.startswith(("http://", "https://"))


class UserSession:
    """Everything one chat user has in flight: sign-in, OTP cooldown, listing draft, last search."""

    def __init__(
        self,
        chat_id: int,
        backend: Backend,
        store: LocalStore,
        cooldown_seconds: int = OTP_COOLDOWN_SECONDS,
        max_photos: int = MAX_LISTING_PHOTOS,
        sleep=asyncio.sleep,
    ):
        self.chat_id = chat_id
        self.backend = backend
        self.store = store
        self.max_photos = max_photos
        self.cooldown = OtpCooldown(cooldown_seconds)
        self.timer: CooldownTimer | None = None
        self.listing: ListingDraftBuilder | None = None
        self.query = SearchQuery()
        self._sleep = sleep

        cached = store.get("user")
        self.user: UserRecord | None = UserRecord.from_dict(cached) if cached else None

    @property
    def phone_number(self) -> str | None:
        return self.store.get("phoneNumber")

    @property
    def language(self) -> str | None:
        return self.store.get("userLanguage")

    def set_language(self, language: str) -> None:
        self.store.set("userLanguage", language)

    def _set_user(self, user: UserRecord) -> None:
        self.user = user
        self.store.set("user", user.to_dict())

    # ===== Sign-in =====

    def _start_cooldown(self, on_expire: Callback | None) -> None:
        self.stop_timer()
        self.cooldown.restart()
        self.timer = CooldownTimer(self.cooldown, sleep=self._sleep, on_expire=on_expire)
        self.timer.start()

    def stop_timer(self) -> None:
        if self.timer is not None:
            self.timer.stop()
            self.timer = None

    async def login(self, phone_number: str, on_expire: Callback | None = None) -> Result:
        result = await self.backend.send_verification_code(phone_number)
        if not result.ok:
            return result
        self.store.set("phoneNumber", normalize_phone(phone_number))
        self.store.set("verificationId", result.value)
        self._start_cooldown(on_expire)
        return result

    async def resend_code(self, on_expire: Callback | None = None) -> Result:
        if not self.cooldown.trigger_resend():
            return Err.of(ErrorKind.BUSY, f"You can resend the code in {self.cooldown.remaining} seconds")
        phone = self.phone_number
        if not phone:
            self.cooldown.resend_failed()
            return Err.of(ErrorKind.SESSION_EXPIRED, "Verification session expired")

        result = await self.backend.send_verification_code(phone)
        if not result.ok:
            self.cooldown.resend_failed()
            return result
        self.store.set("verificationId", result.value)
        self._start_cooldown(on_expire)
        return result

    async def verify(self, code: str) -> Result:
        code = (code or "").strip()
        if len(code) != OTP_LENGTH or not code.isdigit():
            return Err.of(ErrorKind.VALIDATION, "Please enter a valid OTP")
        token = self.store.get("verificationId")
        if not token:
            return Err.of(ErrorKind.SESSION_EXPIRED, "Verification session expired")

        result = await self.backend.verify_code(token, code)
        if result.ok:
            self._set_user(result.value)
            self.store.remove("verificationId")
            self.stop_timer()
        return result

    async def register(self, fields: dict) -> Result:
        if self.user is None:
            return Err.of(ErrorKind.SESSION_EXPIRED, "Please sign in again")
        result = await self.backend.create_user_profile({**fields, "phone_number": self.user.phone_number})
        if result.ok:
            self._set_user(result.value)
        return result

    async def update_profile(self, fields: dict) -> Result:
        if self.user is None:
            return Err.of(ErrorKind.SESSION_EXPIRED, "Please sign in again")
        result = await self.backend.update_user_profile(self.user.id, fields)
        if result.ok:
            self._set_user(result.value)
        return result

    async def upload_driver_license(self, local_uri: str) -> Result:
        uploaded = await self.backend.upload_image(local_uri)
        if not uploaded.ok:
            return uploaded
        result = await self.update_profile({"driver_license": uploaded.value})
        return Ok(uploaded.value) if result.ok else result

    def logout(self) -> None:
        self.close()
        self.user = None
        self.store.remove("user", "verificationId", "phoneNumber")
        logger.info(f"Chat {self.chat_id} signed out")

    # ===== Listing wizard =====

    def start_listing(self) -> ListingDraftBuilder:
        self.listing = ListingDraftBuilder(max_photos=self.max_photos)
        return self.listing

    def discard_listing(self) -> None:
        self.listing = None

    async def _create_listing(self, payload: dict) -> Result:
        images = []
        for uri in payload["images"]:
            if _is_remote(uri):
                images.append(uri)
                continue
            uploaded = await self.backend.upload_image(uri)
            if not uploaded.ok:
                return uploaded
            images.append(uploaded.value)
        return await self.backend.create_listing(self.user.id, {**payload, "images": images})

    async def submit_listing(self) -> Result:
        if self.listing is None:
            return Err.of(ErrorKind.SESSION_EXPIRED, "No listing in progress")
        if self.user is None:
            return Err.of(ErrorKind.SESSION_EXPIRED, "Please sign in again")
        result = await self.listing.submit(self._create_listing)
        if result.ok:
            self.listing = None
        return result

    def close(self) -> None:
        self.stop_timer()
        self.listing = None


class SessionManager:
    def __init__(self, backend: Backend, state_dir: Path = LOCAL_STATE_DIR, **session_options):
        self.backend = backend
        self.state_dir = Path(state_dir)
        self.session_options = session_options
        self._sessions: dict[int, UserSession] = {}

    def get(self, chat_id: int) -> UserSession:
        session = self._sessions.get(chat_id)
        if session is None:
            store = LocalStore(self.state_dir, str(chat_id))
            session = UserSession(chat_id, self.backend, store, **self.session_options)
            self._sessions[chat_id] = session
        return session

    def drop(self, chat_id: int) -> None:
        session = self._sessions.pop(chat_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for chat_id in list(self._sessions):
            self.drop(chat_id)
