import asyncio

from core.otp import CooldownTimer, OtpCooldown


def test_resend_enabled_after_sixty_ticks():
    cooldown = OtpCooldown()
    assert cooldown.remaining == 60
    for _ in range(59):
        cooldown.tick()
        assert not cooldown.can_resend
    cooldown.tick()
    assert cooldown.remaining == 0
    assert cooldown.can_resend


def test_resend_mid_countdown_has_no_effect():
    cooldown = OtpCooldown()
    for _ in range(30):
        cooldown.tick()
    assert not cooldown.trigger_resend()
    assert cooldown.remaining == 30
    assert not cooldown.resending


def test_resend_disables_until_restart():
    cooldown = OtpCooldown(seconds=1)
    cooldown.tick()
    assert cooldown.trigger_resend()
    assert not cooldown.can_resend
    cooldown.restart()
    assert cooldown.remaining == 1


def test_failed_resend_can_be_retried():
    cooldown = OtpCooldown(seconds=0)
    assert cooldown.trigger_resend()
    cooldown.resend_failed()
    assert cooldown.can_resend


def test_tick_stops_at_zero():
    cooldown = OtpCooldown(seconds=1)
    cooldown.tick()
    assert cooldown.tick() == 0


async def test_timer_counts_down_with_fake_sleep():
    slept = []
    expired = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    async def on_expire():
        expired.append(True)

    cooldown = OtpCooldown()
    timer = CooldownTimer(cooldown, sleep=fake_sleep, on_expire=on_expire)
    timer.start()
    await timer.wait()
    assert len(slept) == 60
    assert cooldown.can_resend
    assert expired == [True]


async def test_stopped_timer_no_longer_ticks():
    gate = asyncio.Event()

    async def blocked_sleep(seconds):
        await gate.wait()

    cooldown = OtpCooldown()
    timer = CooldownTimer(cooldown, sleep=blocked_sleep)
    timer.start()
    await asyncio.sleep(0)
    assert timer.running
    timer.stop()
    gate.set()
    await asyncio.sleep(0)
    assert not timer.running
    assert cooldown.remaining == 60


async def test_failing_expiry_callback_is_logged_not_raised():
    async def no_sleep(seconds):
        pass

    async def boom():
        raise RuntimeError("message was deleted")

    timer = CooldownTimer(OtpCooldown(seconds=1), sleep=no_sleep, on_expire=boom)
    timer.start()
    await timer.wait()
