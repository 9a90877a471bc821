import asyncio
import json
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from progress_service import run_consumer
from progress_service.core.config import settings
from progress_service.domain.enums import BudgetPeriod
from progress_service.domain.schemas import api as api_schemas
from progress_service.infrastructure.db.uow import UnitOfWork
from progress_service.infrastructure.kafka.consumer import DLQDeliveryError, process_batch
from progress_service.infrastructure.kafka.producer import KafkaProducerWrapper
from progress_service.services.budget_service import BudgetService


def _message(payload, offset=0, headers=None):
    value = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return SimpleNamespace(
        topic=settings.KAFKA.KAFKA_TOPIC_TRANSACTIONS,
        partition=0,
        offset=offset,
        key=b"key",
        value=value,
        headers=headers or [],
    )


async def _budget(session_maker, user_id):
    response = await BudgetService(UnitOfWork(session_maker)).create_budget(
        user_id,
        api_schemas.CreateBudgetRequest(
            name="June",
            period=BudgetPeriod.MONTHLY,
            total_amount=Decimal("100"),
            start_date=date(2025, 6, 1),
            end_date=date(2025, 6, 30),
            categories=[api_schemas.BudgetCategoryRequest(name="food", allocated_amount=Decimal("100"))],
        ),
    )
    return response.budget_id


def _transaction(budget_id, user_id, value=30, **overrides):
    data = {
        "transactionId": str(uuid4()),
        "budgetId": str(budget_id),
        "userId": str(user_id),
        "category": "food",
        "value": value,
        "type": "expense",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_process_batch_applies_and_dedupes(session_maker, user_id, frozen_now):
    budget_id = await _budget(session_maker, user_id)
    tx = _transaction(budget_id, user_id, value=85)
    dlq = AsyncMock()

    applied = await process_batch(
        [_message(tx, 0), _message(tx, 1)],
        session_maker,
        dlq,
    )

    assert applied == 1
    dlq.send_event.assert_not_called()
    budget = await BudgetService(UnitOfWork(session_maker)).get_budget(user_id, budget_id)
    assert budget.spent_amount == Decimal("85")


@pytest.mark.asyncio
async def test_process_batch_sends_bad_messages_to_dlq(session_maker, user_id, frozen_now):
    budget_id = await _budget(session_maker, user_id)
    dlq = AsyncMock()
    dlq.send_event.return_value = True

    applied = await process_batch(
        [
            _message(b"not json", 0, headers=[("X-Request-ID", b"req-1")]),
            _message(_transaction(uuid4(), user_id), 1),
            _message(_transaction(budget_id, user_id, category="travel"), 2),
            _message(_transaction(budget_id, user_id, value=10), 3),
        ],
        session_maker,
        dlq,
    )

    assert applied == 1
    assert dlq.send_event.await_count == 3
    first = dlq.send_event.await_args_list[0].kwargs
    assert first["topic"] == settings.KAFKA.KAFKA_TOPIC_TRANSACTION_DLQ
    assert first["value"] == b"not json"
    assert ("X-Request-ID", b"req-1") in first["headers"]


@pytest.mark.asyncio
async def test_process_batch_stops_when_dlq_refuses(session_maker, user_id):
    dlq = AsyncMock()
    dlq.send_event.return_value = False

    with pytest.raises(DLQDeliveryError):
        await process_batch([_message(b"{}", 0)], session_maker, dlq)


@pytest.mark.asyncio
async def test_producer_send_event_not_running():
    wrapper = KafkaProducerWrapper(producer=MagicMock())

    assert await wrapper.send_event("topic", b"value") is False


@pytest.mark.asyncio
async def test_producer_send_event():
    producer = MagicMock()
    producer.start = AsyncMock()
    producer.send_and_wait = AsyncMock()
    wrapper = KafkaProducerWrapper(producer=producer)
    await wrapper.start()

    assert await wrapper.send_event("topic", b"value", key=b"k") is True
    producer.send_and_wait.assert_awaited_once_with(
        topic="topic", key=b"k", value=b"value", headers=None
    )


@pytest.mark.asyncio
async def test_producer_send_batch_reports_per_message():
    loop = asyncio.get_running_loop()
    ok = loop.create_future()
    ok.set_result(None)
    failed = loop.create_future()
    failed.set_exception(RuntimeError("broker gone"))

    producer = MagicMock()
    producer.start = AsyncMock()
    producer.flush = AsyncMock()
    producer.send = AsyncMock(side_effect=[ok, failed])
    wrapper = KafkaProducerWrapper(producer=producer)
    await wrapper.start()

    results = await wrapper.send_batch(
        [
            {"topic": "t", "value": b"1"},
            {"topic": "t", "value": b"2"},
        ]
    )

    assert results == [True, False]
    producer.flush.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_consumer_logs_failure_and_releases_resources(caplog):
    engine = MagicMock()
    engine.dispose = AsyncMock()
    producer = MagicMock()
    producer.start = AsyncMock()
    producer.stop = AsyncMock()

    with patch.object(run_consumer, "get_db_engine", return_value=engine), patch.object(
        run_consumer, "get_session_factory", return_value=MagicMock()
    ), patch.object(run_consumer, "KafkaProducerWrapper", return_value=producer), patch.object(
        run_consumer,
        "consume_loop",
        AsyncMock(side_effect=DLQDeliveryError("dlq down")),
    ):
        await run_consumer.main()

    assert any(
        r.levelname == "CRITICAL" and "dlq down" in r.getMessage() for r in caplog.records
    )
    producer.stop.assert_awaited_once()
    engine.dispose.assert_awaited_once()
