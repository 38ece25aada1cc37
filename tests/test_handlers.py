import asyncio

import pytest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from handlers import menu, search
from handlers.auth import AuthFSM
from handlers.search import SearchFSM
from services.session import SessionManager

CHAT_ID = 42
PHONE = "0501234567"


async def never_sleep(seconds):
    await asyncio.Event().wait()


class FakeChat:
    def __init__(self, id):
        self.id = id


class FakeMessage:
    def __init__(self, text="", chat_id=CHAT_ID):
        self.text = text
        self.chat = FakeChat(chat_id)
        self.answers = []
        self.edits = []

    async def answer(self, text, **kwargs):
        self.answers.append(text)

    async def edit_text(self, text, **kwargs):
        self.edits.append(text)


class FakeCallback:
    def __init__(self, data, message):
        self.data = data
        self.message = message

    async def answer(self, *args, **kwargs):
        pass


@pytest.fixture
def state():
    return FSMContext(storage=MemoryStorage(), key=StorageKey(bot_id=1, chat_id=CHAT_ID, user_id=CHAT_ID))


@pytest.fixture
async def sessions(backend, tmp_path):
    manager = SessionManager(backend, tmp_path, sleep=never_sleep)
    yield manager
    manager.close_all()


async def waiting_for_code(sessions, state):
    session = sessions.get(CHAT_ID)
    assert (await session.login(PHONE)).ok
    await state.set_state(AuthFSM.otp)
    assert session.timer.running
    return session


async def test_start_during_otp_stops_the_timer(sessions, state):
    session = await waiting_for_code(sessions, state)
    await menu.start_command(FakeMessage("/start"), state, sessions)
    assert session.timer is None
    assert await state.get_state() is None


async def test_menu_command_during_otp_stops_the_timer(sessions, state):
    session = await waiting_for_code(sessions, state)
    message = FakeMessage("/menu")
    await menu.menu_command(message, state, sessions)
    assert session.timer is None
    assert message.answers == ["Main menu:"]


async def test_back_to_main_stops_timer_and_drops_listing(sessions, state):
    session = await waiting_for_code(sessions, state)
    session.start_listing()
    callback = FakeCallback("menu:main", FakeMessage())
    await menu.back_to_main(callback, state, sessions)
    assert session.timer is None
    assert session.listing is None
    assert callback.message.edits == ["Main menu:"]


@pytest.mark.parametrize("text", ["nan", "inf", "-1", "abc"])
async def test_search_number_rejects_bad_values(sessions, state, text):
    await state.set_state(SearchFSM.number)
    await state.update_data(search_field="max_distance")
    message = FakeMessage(text)
    await search.search_number(message, state, sessions)
    assert sessions.get(CHAT_ID).query.max_distance is None
    assert message.answers == ["Enter a number, or 0 to clear."]
    assert await state.get_state() == SearchFSM.number.state


async def test_search_number_sets_filter(sessions, state):
    await state.update_data(search_field="price_max")
    await search.search_number(FakeMessage("250"), state, sessions)
    assert sessions.get(CHAT_ID).query.price_max == 250
    await search.search_number(FakeMessage("0"), state, sessions)
    assert sessions.get(CHAT_ID).query.price_max is None
