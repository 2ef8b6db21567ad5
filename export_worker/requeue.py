"""
Re-queue failed export jobs that have retries left.

The worker itself never retries; run this from a scheduler (cron, k8s CronJob).
"""

import argparse

import structlog

from export_worker.core.config import settings
from export_worker.services import JobQueue

logger = structlog.get_logger()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument(
        "--max-retries",
        type=int,
        default=settings.max_retries,
        help="only jobs retried fewer times than this are re-queued",
    )
    args = parser.parse_args(argv)

    count = JobQueue().requeue_failed(args.max_retries)
    logger.info("requeue_finished", count=count)


if __name__ == "__main__":
    main()
