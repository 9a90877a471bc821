import asyncio
import logging
from datetime import timedelta
from pathlib import Path

from progress_service.infrastructure.db.uow import UnitOfWork
from progress_service.infrastructure.kafka.producer import KafkaProducerWrapper
from progress_service.services.budget_service import BudgetService
from progress_service.services.goal_service import GoalService
from progress_service.utils.serialization import to_json_bytes
from progress_service.utils.time import utc_now

logger = logging.getLogger(__name__)
HEALTH_FILE = Path("/tmp/healthy")
OUTBOX_BATCH_SIZE = 200
MAX_RETRIES = 5
PROCESSED_RETENTION_DAYS = 30

async def touch_health_file() -> None:
    try:
        HEALTH_FILE.touch()
    except OSError:
        pass

async def run_outbox_loop(ctx) -> None:
    """Relays outbox rows to Kafka until cancelled, backing off on errors."""
    logger.info("Starting Outbox Loop")

    while True:
        try:
            processed_count = await process_outbox_batch(ctx)

            if processed_count > 0:
                continue

            await asyncio.sleep(0.5)

        except asyncio.CancelledError:
            logger.info("Outbox loop cancelled")
            break

        except Exception as e:
            logger.error(
                "Error in outbox loop: %s",
                e,
                exc_info=True,
            )
            await asyncio.sleep(5.0)

async def process_outbox_batch(ctx) -> int:
    """Sends one batch of pending events. Returns how many were delivered."""
    db_maker = ctx.get("db_session_maker")
    kafka: KafkaProducerWrapper = ctx.get("kafka_producer")

    if not db_maker or not kafka:
        return 0

    await touch_health_file()

    async with UnitOfWork(db_maker) as uow:
        events = await uow.outbox.get_pending_events(limit=OUTBOX_BATCH_SIZE)

        if not events:
            return 0

        batch_data = []
        sendable = []

        for event in events:
            try:
                msg_bytes = to_json_bytes(event.payload)
            except (TypeError, ValueError) as e:
                logger.error(
                    "Serialization error for event %s: %s",
                    event.event_id,
                    e,
                )
                event.status = "failed"
                event.retry_count += 1
                continue

            key_val = event.payload.get("entity_id") or event.payload.get("user_id")
            headers = []
            if event.trace_id:
                headers.append(("X-Request-ID", event.trace_id.encode("utf-8")))

            batch_data.append(
                {
                    "topic": event.topic,
                    "value": msg_bytes,
                    "key": str(key_val).encode("utf-8") if key_val else None,
                    "headers": headers,
                }
            )
            sendable.append(event)

        if not batch_data:
            return 0

        results = await kafka.send_batch(batch_data)

        successful_ids = []
        now = utc_now()

        for event, success in zip(sendable, results):
            if success:
                successful_ids.append(event.event_id)
                continue

            event.retry_count += 1

            if event.retry_count >= MAX_RETRIES:
                event.status = "failed"
                logger.error(
                    "Event %s failed permanently after %s retries",
                    event.event_id,
                    MAX_RETRIES,
                )
            else:
                event.next_retry_at = now + timedelta(seconds=5 ** event.retry_count)

        await uow.outbox.delete_events(successful_ids)

    return len(successful_ids)

async def check_goals_deadlines_task(ctx) -> None:
    db_maker = ctx.get("db_session_maker")
    if not db_maker:
        return

    await touch_health_file()

    try:
        service = GoalService(UnitOfWork(db_maker))
        result = await service.check_deadlines()
        logger.info(
            "Deadline check done: %s goals checked, %s overdue, %s events",
            result.checked_goals,
            result.overdue_goals,
            result.events_emitted,
        )

    except Exception as e:
        logger.error(
            "Deadline check failed: %s",
            e,
            exc_info=True,
        )

async def close_budgets_task(ctx) -> None:
    db_maker = ctx.get("db_session_maker")
    if not db_maker:
        return

    try:
        service = BudgetService(UnitOfWork(db_maker))
        closed = await service.close_expired_budgets()
        logger.info("Closed %s expired budgets", closed)

    except Exception as e:
        logger.error(
            "Budget period close failed: %s",
            e,
            exc_info=True,
        )

async def cleanup_transactions_task(ctx) -> None:
    """Forgets processed transaction ids past the redelivery window."""
    db_maker = ctx.get("db_session_maker")
    if not db_maker:
        return

    cutoff = utc_now() - timedelta(days=PROCESSED_RETENTION_DAYS)

    try:
        async with UnitOfWork(db_maker) as uow:
            deleted = await uow.budgets.delete_processed_before(cutoff)

        logger.info("Removed %s processed transaction records", deleted)

    except Exception as e:
        logger.error(
            "Processed transaction cleanup failed: %s",
            e,
        )
