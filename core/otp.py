import asyncio
from typing import Awaitable, Callable

from loguru import logger

COOLDOWN_SECONDS = 60


class OtpCooldown:
    """Resend cooldown for a verification code.

    Counts down one unit per tick. Resend is only possible at zero and
    disables itself until the countdown is restarted.
    """

    def __init__(self, seconds: int = COOLDOWN_SECONDS):
        self.seconds = seconds
        self.remaining = seconds
        self.resending = False

    @property
    def can_resend(self) -> bool:
        return self.remaining == 0 and not self.resending

    def tick(self) -> int:
        if self.remaining > 0:
            self.remaining -= 1
        return self.remaining

    def trigger_resend(self) -> bool:
        if not self.can_resend:
            return False
        self.resending = True
        return True

    def restart(self) -> None:
        self.remaining = self.seconds
        self.resending = False

    def resend_failed(self) -> None:
        # stays at zero so the user can try again
        self.resending = False


class CooldownTimer:
    def __init__(
        self,
        cooldown: OtpCooldown,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        interval: float = 1.0,
        on_expire: Callable[[], Awaitable[None]] | None = None,
    ):
        self.cooldown = cooldown
        self.interval = interval
        self.on_expire = on_expire
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while self.cooldown.remaining > 0:
            await self._sleep(self.interval)
            self.cooldown.tick()
        if self.on_expire is not None:
            try:
                await self.on_expire()
            except Exception as e:
                logger.error(f"Cooldown expiry callback failed: {e}")

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
