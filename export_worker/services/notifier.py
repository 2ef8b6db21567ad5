import json

import pika
import structlog

from export_worker.core.config import settings

logger = structlog.get_logger()

EXPORT_READY = "export.ready"
EXPORT_FAILED = "export.failed"


class EventPublisher:
    """Publishes export lifecycle events to RabbitMQ. Failures are only logged."""

    def __init__(
        self,
        url: str | None = None,
        queue: str | None = None,
        enabled: bool | None = None,
    ) -> None:
        self.url = url or settings.rabbitmq_url
        self.queue = queue or settings.notification_queue
        self.enabled = settings.notifications_enabled if enabled is None else enabled

    def publish(self, job_id: str, user_id: str, event_type: str, **data) -> bool:
        if not self.enabled:
            return False

        try:
            params = pika.URLParameters(self.url)
            connection = pika.BlockingConnection(params)
            try:
                channel = connection.channel()
                channel.queue_declare(queue=self.queue, durable=True)

                message = {
                    "job_id": job_id,
                    "user_id": user_id,
                    "type": event_type,
                    **data,
                }

                channel.basic_publish(
                    exchange="",
                    routing_key=self.queue,
                    body=json.dumps(message),
                    properties=pika.BasicProperties(
                        delivery_mode=2,  # persistent
                        content_type="application/json",
                    ),
                )
            finally:
                connection.close()

            logger.info("notification_published", job_id=job_id, type=event_type)
            return True

        except Exception as e:
            logger.error("notification_publish_failed", job_id=job_id, error=str(e))
            return False
