import threading
from concurrent.futures import Future, ThreadPoolExecutor

import structlog

from export_worker.core.config import settings
from export_worker.schemas.export import ClaimedJob
from export_worker.services import JobQueue
from export_worker.tasks import ExportProcessor

logger = structlog.get_logger()


class JobPool:
    """Fixed number of job slots backed by a thread pool."""

    def __init__(self, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._executor = ThreadPoolExecutor(max_workers=max_concurrent, thread_name_prefix="export-job")
        self._lock = threading.Lock()
        self._running = 0

    @property
    def running(self) -> int:
        with self._lock:
            return self._running

    def try_acquire(self) -> bool:
        """Reserve a slot without blocking."""
        if not self._slots.acquire(blocking=False):
            return False
        with self._lock:
            self._running += 1
        return True

    def release(self) -> None:
        with self._lock:
            self._running -= 1
        self._slots.release()

    def submit(self, fn, *args) -> Future:
        """Run ``fn`` on a previously reserved slot and free the slot when it returns."""

        def _run():
            try:
                return fn(*args)
            finally:
                self.release()

        try:
            return self._executor.submit(_run)
        except RuntimeError:
            self.release()
            raise

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class ExportWorker:
    """Polls the job table and hands claimed jobs to the pool."""

    def __init__(
        self,
        queue: JobQueue,
        processor: ExportProcessor,
        pool: JobPool,
        poll_interval: float | None = None,
    ) -> None:
        self.queue = queue
        self.processor = processor
        self.pool = pool
        self.poll_interval = settings.poll_interval_seconds if poll_interval is None else poll_interval
        self._stop = threading.Event()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_shutdown(self) -> None:
        self._stop.set()

    def tick(self) -> bool:
        """Claim and dispatch at most one job. Returns True if a job was dispatched."""
        if not self.pool.try_acquire():
            return False

        job = None
        try:
            job = self.queue.claim_next_job()
        finally:
            if job is None:
                self.pool.release()

        if job is None:
            return False

        logger.info("job_dispatched", job_id=str(job.id), running=self.pool.running)
        self.pool.submit(self._process, job)
        return True

    def _process(self, job: ClaimedJob) -> None:
        try:
            self.processor.process(job)
        except Exception as e:
            logger.error("job_task_crashed", job_id=str(job.id), error=str(e))

    def run(self) -> None:
        logger.info(
            "worker_ready",
            max_concurrent=self.pool.max_concurrent,
            poll_interval=self.poll_interval,
        )

        while not self._stop.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error("worker_error", error=str(e))
            self._stop.wait(self.poll_interval)

        logger.info("worker_draining", running=self.pool.running)
        self.pool.shutdown(wait=True)
