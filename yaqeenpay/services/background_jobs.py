# yaqeenpay/services/background_jobs.py

import asyncio
import logging
from typing import Callable, List
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import SessionLocal
from yaqeenpay.services.order_service import OrderService
from yaqeenpay.services.outbox import run_outbox_dispatcher
from yaqeenpay.services.topup_service import TopupLockService

logger = logging.getLogger(__name__)

_tasks: List[asyncio.Task] = []


def _run_with_session(job: Callable):
    db = SessionLocal()
    try:
        return job(db)
    finally:
        db.close()


async def _periodic(name: str, job: Callable, interval: int) -> None:
    logger.info(f"Background job {name} started (interval={interval}s)")
    while True:
        try:
            result = await asyncio.to_thread(_run_with_session, job)
            logger.debug(f"Background job {name} finished: {result}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Background job {name} failed: {e}", exc_info=True)
        await asyncio.sleep(interval)


def start_background_jobs() -> List[asyncio.Task]:
    """Start the periodic jobs on the running loop"""
    if not settings.BACKGROUND_JOBS_ENABLED:
        logger.info("Background jobs disabled")
        return []

    if settings.OUTBOX_ENABLED:
        _tasks.append(asyncio.create_task(run_outbox_dispatcher()))
    _tasks.append(asyncio.create_task(_periodic(
        "topup_lock_cleanup", TopupLockService.cleanup_expired,
        settings.TOPUP_LOCK_CLEANUP_INTERVAL)))
    _tasks.append(asyncio.create_task(_periodic(
        "order_auto_complete", OrderService.auto_complete_expired,
        settings.ORDER_AUTO_COMPLETE_INTERVAL)))

    logger.info(f"Started {len(_tasks)} background jobs")
    return list(_tasks)


async def stop_background_jobs() -> None:
    for task in _tasks:
        task.cancel()
    for task in _tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    if _tasks:
        logger.info(f"Stopped {len(_tasks)} background jobs")
    _tasks.clear()
