"""
Run worker: pops browser runs from the Redis backlog and executes them.

Run with: python worker.py

At most WORKER_CONCURRENCY runs are in flight; a job is only popped once a
slot is free, so the backlog stays in Redis. On start, `processing` rows
older than ORPHAN_THRESHOLD_MINUTES are failed (their worker died).
"""

import asyncio
import logging
import signal

from qa_dashboard.automation.browser import CancelToken
from qa_dashboard.config import Settings, settings
from qa_dashboard.database import build_engine, build_sessionmaker
from qa_dashboard.middleware.logging_config import configure_logging
from qa_dashboard.services.executor import RunExecutor
from qa_dashboard.services.job_queue import QUEUE_KEY, RunQueue
from qa_dashboard.services.result_service import ResultService

logger = logging.getLogger("worker")

POP_TIMEOUT = 5  # seconds


async def sweep_orphans(session_maker, threshold_minutes: int) -> int:
    async with session_maker() as db:
        swept = await ResultService(db).sweep_orphans(threshold_minutes)
        await db.commit()
    if swept:
        logger.warning("Marked %d abandoned run(s) as failed", swept)
    return swept


class Worker:
    def __init__(self, executor: RunExecutor, queue: RunQueue, concurrency: int):
        self.executor = executor
        self.queue = queue
        self.slots = asyncio.Semaphore(max(concurrency, 1))
        self.tokens: dict[int, CancelToken] = {}
        self.tasks: set[asyncio.Task] = set()
        self.stopping = asyncio.Event()

    async def serve(self) -> None:
        while not self.stopping.is_set():
            await self.slots.acquire()
            if self.stopping.is_set():
                self.slots.release()
                break
            try:
                job = await self.queue.pop(timeout=POP_TIMEOUT)
            except Exception as exc:
                self.slots.release()
                logger.error("Worker loop error: %s", exc, exc_info=True)
                await asyncio.sleep(1)
                continue
            if job is None:
                self.slots.release()
                continue
            task = asyncio.create_task(self._run(job))
            self.tasks.add(task)
            task.add_done_callback(self.tasks.discard)

        if self.tasks:
            logger.info("Waiting for %d in-flight run(s) to stop", len(self.tasks))
            await asyncio.gather(*self.tasks, return_exceptions=True)

    async def _run(self, job: dict) -> None:
        token = CancelToken()
        result_id = job.get("result_id")
        self.tokens[result_id] = token
        try:
            await self.executor.run(job, token)
        except Exception as exc:
            logger.error("Run for result %s crashed: %s", result_id, exc, exc_info=True)
        finally:
            self.tokens.pop(result_id, None)
            self.slots.release()

    def stop(self) -> None:
        logger.info("Shutting down; cancelling %d run(s)", len(self.tokens))
        self.stopping.set()
        for token in self.tokens.values():
            token.cancel("worker shutting down")


async def main(config: Settings = settings):
    configure_logging(config.log_level, config.log_format)

    engine = build_engine(config)
    session_maker = build_sessionmaker(engine)
    queue = RunQueue.from_url(config.redis_url)

    await sweep_orphans(session_maker, config.orphan_threshold_minutes)

    executor = RunExecutor(session_maker, config, queue=queue)
    worker = Worker(executor, queue, config.worker_concurrency)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    logger.info(
        "Worker started, listening on %s (concurrency=%d)", QUEUE_KEY, config.worker_concurrency
    )
    try:
        await worker.serve()
    finally:
        await queue.aclose()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
