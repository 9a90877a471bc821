import asyncio
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from progress_service.core.config import settings

logger = logging.getLogger(__name__)
SEND_TIMEOUT = 10

class KafkaProducerWrapper:
    """Kafka producer shared by the outbox relay and the DLQ path."""

    def __init__(self, producer: AIOKafkaProducer | None = None):
        self.producer = producer or AIOKafkaProducer(
            bootstrap_servers=settings.KAFKA.KAFKA_BOOTSTRAP_SERVERS,
            acks="all",
            linger_ms=50,
            enable_idempotence=True,
            request_timeout_ms=SEND_TIMEOUT * 1000,
        )
        self._is_running = False

    async def start(self) -> None:
        await self.producer.start()
        self._is_running = True
        logger.info("Kafka producer started")

    async def stop(self) -> None:
        if self._is_running and self.producer:
            await self.producer.stop()
            self._is_running = False
            logger.info("Kafka producer stopped")

    async def send_event(
        self,
        topic: str,
        value: bytes,
        key: bytes | None = None,
        headers: Optional[list[tuple[str, bytes]]] = None,
    ) -> bool:
        """Sends one message and waits for the broker ack."""
        if not self._is_running:
            logger.error("Kafka producer not running")
            return False

        try:
            await asyncio.wait_for(
                self.producer.send_and_wait(
                    topic=topic,
                    key=key,
                    value=value,
                    headers=headers,
                ),
                timeout=SEND_TIMEOUT,
            )
            return True

        except Exception as e:
            logger.error(f"Kafka send error on {topic}: {e}")
            return False

    async def send_batch(self, events: list[dict]) -> list[bool]:
        """
        Sends a batch and reports per-message success in input order.

        Each event is a dict with topic, value and optional key and headers.
        """
        if not self._is_running:
            logger.error("Kafka producer not running")
            return [False] * len(events)

        futures: list[asyncio.Future] = []

        for event in events:
            try:
                fut = await self.producer.send(
                    topic=event["topic"],
                    value=event["value"],
                    key=event.get("key"),
                    headers=event.get("headers"),
                )
                futures.append(fut)

            except Exception as e:
                f = asyncio.get_running_loop().create_future()
                f.set_exception(e)
                futures.append(f)

        try:
            await self.producer.flush()
        except Exception as e:
            logger.error(f"Kafka flush failed: {e}")

        results = await asyncio.gather(*futures, return_exceptions=True)

        final_status: list[bool] = []
        for res in results:
            if isinstance(res, Exception):
                logger.error(f"Kafka batch send error: {res}")
                final_status.append(False)
            else:
                final_status.append(True)

        return final_status
