"""
AutoCut Pro Export Worker - Claims export jobs from Postgres and renders them.
"""

import signal
import sys
import threading
from functools import partial

import structlog
import uvicorn

from export_worker.api import create_app
from export_worker.core.config import settings
from export_worker.models import check_connection
from export_worker.services import JobQueue
from export_worker.tasks import ExportProcessor
from export_worker.worker import ExportWorker, JobPool

logger = structlog.get_logger()


def signal_handler(worker: ExportWorker, signum, frame):
    logger.info("shutdown_requested", signal=signum)
    worker.request_shutdown()


def start_health_server(pool: JobPool) -> uvicorn.Server:
    config = uvicorn.Config(
        create_app(pool),
        host=settings.worker_host,
        port=settings.worker_port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    threading.Thread(target=server.run, name="health-server", daemon=True).start()
    logger.info("health_server_started", port=settings.worker_port)
    return server


def main():
    logger.info(
        "worker_starting",
        worker_id=settings.worker_id,
        max_concurrent=settings.export_max_concurrent,
    )

    try:
        check_connection()
    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        sys.exit(1)
    logger.info("database_connected")

    queue = JobQueue()
    pool = JobPool(settings.export_max_concurrent)
    worker = ExportWorker(queue, ExportProcessor(queue), pool)

    signal.signal(signal.SIGTERM, partial(signal_handler, worker))
    signal.signal(signal.SIGINT, partial(signal_handler, worker))

    server = start_health_server(pool)
    try:
        worker.run()
    finally:
        server.should_exit = True

    logger.info("worker_stopped")


if __name__ == "__main__":
    main()
