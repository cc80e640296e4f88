# worker/worker.py
"""
Email validation worker.

Pops ``{"job_id": ...}`` payloads from the Redis queue and runs each job with
the EmailListVerify provider. A pipeline scheduler runs alongside and, among
other stages, re-queues jobs that stopped reporting progress.
"""
import asyncio
import json
import logging
import os
import signal
from typing import Optional, Set

import redis.asyncio as redis

from leadverify.config import settings
from leadverify.db import get_engine, get_session_maker, wait_for_db
from leadverify.logging_config import setup_logging
from leadverify.services.dispatch import RedisJobDispatcher
from leadverify.services.email_validation import process_email_validation_job
from leadverify.services.scheduler import DatabaseCampaignSource, PipelineScheduler, default_stages
from leadverify.verifier import EmailListVerifyProvider

LOG = logging.getLogger("leadverify-worker")

WORKER_CONCURRENCY = int(os.getenv("WORKER_CONCURRENCY", "4"))


# -------------------------------------------------------------------
# safe_blpop shutdown-safe version
# -------------------------------------------------------------------
async def safe_blpop(r, key, timeout):
    try:
        return await r.blpop(key, timeout=timeout)
    except redis.RedisError as e:
        LOG.error("Redis BLPOP failed: %s; retrying", e)
        await asyncio.sleep(0.5)
        return None


def parse_payload(raw) -> Optional[str]:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        LOG.error("Invalid JSON payload popped: %r", raw)
        return None
    job_id = payload.get("job_id") if isinstance(payload, dict) else None
    if not job_id:
        LOG.warning("Payload without job_id: %s", payload)
        return None
    return str(job_id)


class JobRunner:
    """Runs jobs concurrently, never the same job twice at once in this process."""

    def __init__(self, session_maker, provider, concurrency: int = WORKER_CONCURRENCY):
        self.session_maker = session_maker
        self.provider = provider
        self._semaphore = asyncio.Semaphore(concurrency)
        self._running: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, job_id: str) -> bool:
        if job_id in self._running:
            LOG.info("Job %s already running; ignoring duplicate payload", job_id)
            return False
        self._running.add(job_id)
        task = asyncio.create_task(self._run(job_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, job_id: str):
        try:
            async with self._semaphore:
                async with self.session_maker() as session:
                    job = await process_email_validation_job(session, job_id, self.provider)
                    LOG.info("Job %s finished with status=%s", job_id, job.status.value)
        except Exception:
            LOG.exception("Unhandled error running job %s", job_id)
        finally:
            self._running.discard(job_id)

    async def drain(self):
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


# -------------------------------------------------------------------
# Worker loop
# -------------------------------------------------------------------
async def worker_loop(stop: asyncio.Event):
    await wait_for_db()
    session_maker = get_session_maker()
    r = redis.from_url(settings.REDIS_URL, decode_responses=True)
    LOG.info("Worker connected to Redis: %s queue=%s", settings.REDIS_URL, settings.QUEUE_KEY)

    provider = EmailListVerifyProvider()
    runner = JobRunner(session_maker, provider)
    scheduler = PipelineScheduler(
        DatabaseCampaignSource(session_maker),
        default_stages(session_maker, RedisJobDispatcher()),
    )
    scheduler_task = asyncio.create_task(scheduler.run_forever(stop=stop))

    try:
        while not stop.is_set():
            res = await safe_blpop(r, settings.QUEUE_KEY, 5)
            if not res:
                continue
            _, raw = res
            job_id = parse_payload(raw)
            if job_id:
                runner.submit(job_id)
    finally:
        scheduler_task.cancel()
        await asyncio.gather(scheduler_task, return_exceptions=True)
        await runner.drain()
        await provider.aclose()
        await r.aclose()
        await get_engine().dispose()
        LOG.info("Worker shutdown")


def main():
    setup_logging()
    LOG.info("Starting leadverify worker")

    async def _main():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        await worker_loop(stop)

    asyncio.run(_main())
    LOG.info("Worker done")


if __name__ == "__main__":
    main()
