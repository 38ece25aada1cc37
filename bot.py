import asyncio

import uvicorn
from aiogram import Bot, Dispatcher, Router
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from loguru import logger

from api import cars as cars_api
from config import API_HOST, API_PORT, BOT_TOKEN, LOG_PATH, MEDIA_DIR, SEED_DEMO_CARS
from database import init_db
from handlers import auth, listing, menu, profile, search
from models.constants import DEMO_CARS
from services.session import SessionManager

logger.add(LOG_PATH, rotation="10 MB", compression="zip")


def build_router() -> Router:
    router = Router()
    menu.register_menu_handlers(router)
    auth.register_auth_handlers(router)
    listing.register_listing_handlers(router)
    search.register_search_handlers(router)
    profile.register_profile_handlers(router)
    return router


def build_api() -> FastAPI:
    MEDIA_DIR.mkdir(parents=True, exist_ok=True)
    web_app = FastAPI()
    web_app.mount("/api", cars_api.app)
    web_app.mount("/media", StaticFiles(directory=MEDIA_DIR), name="media")
    return web_app


async def main():
    if not BOT_TOKEN:
        logger.error("BOT_TOKEN is not set! Please set it in the environment.")
        return

    init_db()
    backend = cars_api.get_backend()
    if SEED_DEMO_CARS:
        backend.seed_cars(DEMO_CARS)
    sessions = SessionManager(backend)

    bot = Bot(token=BOT_TOKEN, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher(storage=MemoryStorage(), sessions=sessions)
    dp.include_router(build_router())

    server = uvicorn.Server(uvicorn.Config(build_api(), host=API_HOST, port=API_PORT, log_level="info"))
    api_task = asyncio.create_task(server.serve())
    logger.info(f"Bot started with the listings API on port {API_PORT}")

    try:
        await dp.start_polling(bot)
    finally:
        sessions.close_all()
        server.should_exit = True
        await api_task
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
