"""
order_processor.handler — SQS consumer for queued Lalamove webhooks.

Processes records one at a time. The first failure is re-raised, failing
the whole invocation so the batch returns to the queue and the redrive
policy (maxReceiveCount → DLQ) takes over. No local retry or backoff.
Records are handled idempotently, so redelivery of already-processed
records in the same batch is harmless.
"""

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext
from lalamove_relay import Settings
from lalamove_relay.client import LalamoveClient
from lalamove_relay.models import QueuedProcessingMessage
from lalamove_relay.notify import ChatNotifier
from lalamove_relay.processing import ProcessingDependencies, process_message
from lalamove_relay.store import OrderStore

logger = Logger(service="order-processor")
tracer = Tracer()

_dependencies_cache: ProcessingDependencies | None = None


def _dependencies() -> ProcessingDependencies:
    global _dependencies_cache
    if _dependencies_cache is None:
        settings = Settings.from_env()
        _dependencies_cache = ProcessingDependencies(
            settings=settings,
            client=LalamoveClient(settings),
            notifier=ChatNotifier(settings),
            store=OrderStore(settings) if settings.persistence_enabled else None,
        )
    return _dependencies_cache


@logger.inject_lambda_context(clear_state=True)
@tracer.capture_lambda_handler
def handler(event: dict[str, Any], context: LambdaContext) -> None:
    """Order processor entry point."""
    records = event.get("Records", [])
    logger.info("Processing SQS messages", extra={"count": len(records)})
    deps = _dependencies()

    for record in records:
        message_id = record.get("messageId")
        try:
            message = QueuedProcessingMessage.from_json(record.get("body", ""))
            process_message(message, deps)
        except Exception as exc:
            logger.error(
                "Error processing SQS record",
                extra={"message_id": message_id, "error": str(exc)},
            )
            raise
        logger.info("Successfully processed SQS record", extra={"message_id": message_id})

    logger.info("Finished processing all SQS messages")
