from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from zoneinfo import ZoneInfo

from aiogram import Bot, Dispatcher

from shimekiri.config import Settings, load_settings
from shimekiri.domain.tasks.service import TaskService
from shimekiri.infra.clock.system_clock import SystemClock
from shimekiri.infra.ids.uuid_gen import UuidGenerator
from shimekiri.infra.llm.intent import OpenAIIntentClassifier
from shimekiri.infra.notify.chatwork import ChatworkClient
from shimekiri.infra.scheduler.loop import NotificationScheduler, SchedulerConfig
from shimekiri.infra.storage.json_tasks import JsonTaskRepository
from shimekiri.ui.commands import TaskCommandHandler
from shimekiri.ui.telegram.handlers.tasks import router as tasks_router
from shimekiri.ui.telegram.middlewares.di import DIMiddleware

logger = logging.getLogger(__name__)


def _tasks_path(settings: Settings) -> Path:
    path = settings.tasks_path
    if not path.is_absolute():
        path = Path.cwd() / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


async def main() -> None:
    """
    Composition root: build services, sweep expired tasks, then run the
    Telegram bot and the notification scheduler until interrupted.

    Only run ONE instance at a time: the task file has no cross-process lock.
    """
    settings = load_settings()

    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - [PID:%(process)d] - %(message)s'
    )
    logger.info("=" * 60)
    logger.info("Bot starting - PID: %s", os.getpid())
    logger.info("=" * 60)

    clock = SystemClock(ZoneInfo(settings.timezone))
    tz = clock.tz
    tasks_path = _tasks_path(settings)
    logger.info("TASKS_PATH: %s", tasks_path)

    repo = JsonTaskRepository(tasks_path)
    service = TaskService(repo=repo, clock=clock, ids=UuidGenerator(), tz=tz)

    archived = await service.archive_expired()
    logger.info("Archived %s expired tasks at startup", archived)

    notifier = ChatworkClient(settings.chatwork_api_token, settings.chatwork_room_id)
    if not await notifier.test_connection():
        logger.warning("Chatwork connection failed; check CHATWORK_API_TOKEN and CHATWORK_ROOM_ID")

    classifier = None
    if settings.openai_api_key:
        classifier = OpenAIIntentClassifier(settings.openai_api_key, model=settings.openai_model)
        logger.info("LLM intent classification enabled model=%s", settings.openai_model)

    commands = TaskCommandHandler(service, clock, notifier=notifier, classifier=classifier)

    bot = Bot(token=settings.bot_token)
    dp = Dispatcher()
    dp.message.middleware(DIMiddleware(commands))
    dp.include_router(tasks_router)

    scheduler = NotificationScheduler(
        service,
        notifier,
        clock,
        tz,
        SchedulerConfig(
            morning_hour=settings.morning_notify_hour,
            upcoming_days=settings.upcoming_days,
        ),
    )
    scheduler.start()

    logger.info("Starting polling")
    try:
        await dp.start_polling(bot)
    finally:
        await scheduler.stop()
        await bot.session.close()
        logger.info("Bot shutdown complete - PID: %s", os.getpid())


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")


if __name__ == "__main__":
    run()
