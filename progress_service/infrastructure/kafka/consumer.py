import asyncio
import json
import logging
from pathlib import Path
from typing import List

from aiokafka import AIOKafkaConsumer

from progress_service.core import metrics
from progress_service.core.config import settings
from progress_service.core.context import set_request_id
from progress_service.domain.schemas import kafka as schemas
from progress_service.infrastructure.db.uow import UnitOfWork
from progress_service.infrastructure.kafka.producer import KafkaProducerWrapper
from progress_service.services.budget_service import BudgetService

logger = logging.getLogger(__name__)
HEALTH_FILE = Path("/tmp/healthy")
BATCH_SIZE = 100

class DLQDeliveryError(RuntimeError):
    """The DLQ refused a message; offsets must not be committed."""

async def keep_alive_task() -> None:
    while True:
        try:
            HEALTH_FILE.touch(exist_ok=True)
        except OSError:
            pass

        await asyncio.sleep(5)

def _extract_request_id(message) -> str | None:
    for key, val in message.headers or ():
        if key == "X-Request-ID":
            return val.decode("utf-8")
    return None

async def consume_loop(
    db_session_maker,
    dlq_producer: KafkaProducerWrapper,
) -> None:
    consumer = AIOKafkaConsumer(
        settings.KAFKA.KAFKA_TOPIC_TRANSACTIONS,
        bootstrap_servers=settings.KAFKA.KAFKA_BOOTSTRAP_SERVERS,
        group_id=settings.KAFKA.KAFKA_PROGRESS_GROUP_ID,
        enable_auto_commit=False,
        auto_offset_reset="earliest",
        max_poll_records=BATCH_SIZE,
    )

    await consumer.start()
    logger.info("Kafka consumer started")

    health_task = asyncio.create_task(keep_alive_task())

    try:
        while True:
            result = await consumer.getmany(
                timeout_ms=1000,
                max_records=BATCH_SIZE,
            )

            for tp, messages in result.items():
                if not messages:
                    continue

                highwater = consumer.highwater(tp)
                if highwater is not None:
                    lag = highwater - (messages[-1].offset + 1)
                    metrics.KAFKA_CONSUMER_LAG.labels(
                        topic=tp.topic,
                        partition=tp.partition,
                    ).set(lag)

                await process_batch(
                    messages,
                    db_session_maker,
                    dlq_producer,
                )

            await consumer.commit()

    except asyncio.CancelledError:
        logger.info("Kafka consumer loop cancelled")

    except Exception as e:
        logger.critical(
            "Fatal consumer error: %s",
            e,
            exc_info=True,
        )

    finally:
        health_task.cancel()
        await consumer.stop()

async def process_batch(
    messages: List,
    db_session_maker,
    dlq_producer: KafkaProducerWrapper,
) -> int:
    """
    Applies each transaction in its own transaction. Messages that fail to
    parse or apply go to the DLQ. Returns the number of applied messages.
    """
    applied = 0

    for message in messages:
        req_id = _extract_request_id(message)
        set_request_id(req_id)

        try:
            data = json.loads(message.value)
            event = schemas.TransactionEvent.model_validate(data)

            service = BudgetService(UnitOfWork(db_session_maker))
            if await service.apply_transaction(event):
                applied += 1

        except Exception as e:
            logger.error(
                "Processing failed for message %s. Sending to DLQ. Reason: %s",
                message.offset,
                e,
            )
            await send_to_dlq(dlq_producer, message, e, req_id)

    return applied

async def send_to_dlq(
    dlq_producer: KafkaProducerWrapper,
    message,
    error: Exception,
    req_id: str | None = None,
) -> None:
    metrics.KAFKA_DLQ_ERRORS.labels(
        topic=message.topic,
        reason=type(error).__name__,
    ).inc()

    headers = [("error", str(error).encode("utf-8"))]
    if req_id:
        headers.append(("X-Request-ID", req_id.encode("utf-8")))

    success = await dlq_producer.send_event(
        topic=settings.KAFKA.KAFKA_TOPIC_TRANSACTION_DLQ,
        value=message.value,
        key=message.key,
        headers=headers,
    )
    if not success:
        logger.critical(
            "CRITICAL: Failed to send message %s to DLQ. Stopping consumer.",
            message.offset,
        )
        raise DLQDeliveryError(f"DLQ refused message at offset {message.offset}")
