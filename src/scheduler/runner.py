"""Управление планировщиком APScheduler.

Этот модуль предоставляет функции для:
- Создания и настройки планировщика
- Регистрации периодических задач
- Запуска и остановки планировщика

APScheduler используется для:
- Ежемесячного обнуления счётчиков использования (1-го числа в 00:05 UTC)

Интеграция с FastAPI:
    Планировщик запускается в lifespan FastAPI приложения.
    При остановке приложения планировщик корректно завершается.

Пример использования:
    from src.scheduler import create_scheduler, start_scheduler, stop_scheduler

    scheduler = create_scheduler()
    start_scheduler(scheduler)
    ...
    stop_scheduler(scheduler)
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.scheduler.tasks import reset_monthly_usage
from src.utils.logging import get_logger

logger = get_logger(__name__)

MONTHLY_RESET_JOB_ID = "reset_monthly_usage"


def create_scheduler() -> AsyncIOScheduler:
    """Создать и настроить планировщик задач.

    Расписание задач:
    - reset_monthly_usage: 1-го числа каждого месяца в 00:05 UTC

    Планировщик НЕ запускается автоматически — нужно вызвать start_scheduler().

    Returns:
        Настроенный экземпляр AsyncIOScheduler (не запущенный).
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        reset_monthly_usage,
        trigger=CronTrigger(day=1, hour=0, minute=5, timezone="UTC"),
        id=MONTHLY_RESET_JOB_ID,
        name="Обнуление месячных счётчиков (1-е число, 00:05 UTC)",
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
    )

    logger.info("Планировщик создан с %d задачами", len(scheduler.get_jobs()))
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Запустить планировщик.

    Планировщик работает в фоне и не блокирует event loop.

    Args:
        scheduler: Экземпляр AsyncIOScheduler.
    """
    if scheduler.running:
        logger.warning("Планировщик уже запущен")
        return

    scheduler.start()
    logger.info("Планировщик запущен")

    for job in scheduler.get_jobs():
        logger.debug("  - %s: %s", job.id, job.next_run_time)


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Остановить планировщик.

    Args:
        scheduler: Экземпляр AsyncIOScheduler.
    """
    if not scheduler.running:
        logger.debug("Планировщик не запущен, пропускаем остановку")
        return

    scheduler.shutdown(wait=False)
    logger.info("Планировщик остановлен")
