"""
Celery Tasks
Background wait-time refinement run outside the API process.

The worker opens its own SQL store, applies the status-guarded estimate
update and publishes the change on the Redis channel; the API's
RedisChangeRelay re-broadcasts it to SSE clients.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional

from smartqueue.celery_worker import celery_app
from smartqueue.core.config import Settings, get_settings
from smartqueue.events import ChangeSignal, RedisChangePublisher
from smartqueue.services.estimation import WaitTimeEstimator
from smartqueue.services.predictor import get_predictor, reset_predictor
from smartqueue.services.queue_engine import QueueEngine
from smartqueue.store.sql import SqlStore

logger = logging.getLogger(__name__)


async def refine_estimate_once(token_id: str, settings: Optional[Settings] = None) -> bool:
    """
    Refine one token's estimate against a freshly opened SQL store.

    Returns:
        bool: True if the estimate was applied
    """
    settings = settings or get_settings()

    signal = ChangeSignal()
    publisher = RedisChangePublisher(settings.redis_url, settings.change_channel)
    signal.subscribe(publisher)

    store = SqlStore(
        database_url=settings.database_url,
        history_retention=settings.history_retention,
        echo=settings.database_echo,
    )
    predictor = get_predictor()
    estimator = WaitTimeEstimator(
        predictor,
        timeout=settings.predictor_timeout_seconds,
        default_prep_minutes=settings.default_prep_minutes,
    )

    try:
        async with store:
            engine = QueueEngine(store, signal, estimator, settings=settings)
            return await engine.refresh_estimate(token_id)
    finally:
        await signal.drain()
        await publisher.close()
        if predictor is not None:
            await predictor.close()
            reset_predictor()


@celery_app.task(
    bind=True,
    max_retries=2,
    default_retry_delay=2,
    autoretry_for=(ConnectionError, OSError),
    retry_backoff=True
)
def refine_token_estimate(self, token_id: str) -> dict:
    """
    Replace a token's placeholder estimate.

    Args:
        token_id: Token to refine

    Returns:
        dict: Whether the estimate was applied
    """
    task_id = self.request.id
    logger.info(f"📋 Task {task_id}: Refining estimate for {token_id}")
    start_time = time.time()

    applied = asyncio.run(refine_estimate_once(token_id))

    elapsed = round(time.time() - start_time, 3)
    if applied:
        logger.info(f"✅ Task {task_id}: Estimate for {token_id} applied in {elapsed}s")
    else:
        logger.info(f"⚠️ Task {task_id}: {token_id} no longer waiting, estimate dropped")

    return {
        'token_id': token_id,
        'applied': applied,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
