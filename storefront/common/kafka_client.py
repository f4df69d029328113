import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaProducer

from .config import settings

_logger = logging.getLogger(__name__)

START_ATTEMPTS = 4
START_BACKOFF = 1.0

_producer: Optional[AIOKafkaProducer] = None
_producer_lock = asyncio.Lock()
# Monotonic time of the last start that exhausted its attempts
_last_failure: Optional[float] = None


async def _discard(producer: AIOKafkaProducer) -> None:
    try:
        await producer.stop()
    except Exception as e:
        _logger.debug("Failed producer did not stop cleanly | err=%s", e)


async def get_producer() -> AIOKafkaProducer:
    global _producer, _last_failure
    if _producer is None:
        async with _producer_lock:
            if _producer is None:
                if _last_failure is not None and time.monotonic() - _last_failure < settings.KAFKA_RETRY_COOLDOWN:
                    raise RuntimeError("Kafka broker unreachable, waiting before the next attempt")
                backoff = START_BACKOFF
                last_exc: Optional[BaseException] = None
                for _ in range(START_ATTEMPTS):  # ~ 1+2+4+8 = 15s before giving up
                    producer = None
                    try:
                        producer = AIOKafkaProducer(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)
                        await producer.start()
                        _producer = producer
                        break
                    except Exception as e:
                        last_exc = e
                        if producer is not None:
                            await _discard(producer)
                        await asyncio.sleep(backoff)
                        backoff = min(backoff * 2, 30.0)
                if _producer is None:
                    _last_failure = time.monotonic()
                    _logger.error(
                        "Kafka producer start failed | servers=%s cooldown=%ss err=%s",
                        settings.KAFKA_BOOTSTRAP_SERVERS,
                        settings.KAFKA_RETRY_COOLDOWN,
                        last_exc,
                    )
                    raise last_exc or RuntimeError("Kafka producer start failed")
                _last_failure = None
    return _producer


async def close_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None


async def publish_event(event_type: str, payload: Dict[str, Any], key: Optional[str] = None) -> bool:
    """Publish an order event. Returns False when the broker is disabled or unreachable.

    Events describe state that is already committed, so a publish failure is
    logged and reported but never rolls anything back.
    """
    if not settings.KAFKA_ENABLED:
        return False
    message = json.dumps({"type": event_type, **payload}, default=str).encode("utf-8")
    try:
        producer = await get_producer()
        await producer.send_and_wait(
            settings.ORDER_EVENTS_TOPIC,
            message,
            key=key.encode("utf-8") if key else None,
        )
    except Exception as e:
        _logger.warning("Event publish failed | type=%s topic=%s err=%s", event_type, settings.ORDER_EVENTS_TOPIC, e)
        return False
    _logger.info("Event published | type=%s topic=%s key=%s", event_type, settings.ORDER_EVENTS_TOPIC, key)
    return True
