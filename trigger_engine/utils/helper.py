import asyncio
import logging
import time
import uuid

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (retry, stop_after_attempt, wait_random_exponential, retry_if_exception_type,
                      before_sleep_log)

from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


# ---------- retry -------------

def retryable():  # common decorator config for redis round-trips
    return retry(
        retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError, asyncio.TimeoutError)),
        wait=wait_random_exponential(multiplier=0.5, max=8),
        stop=stop_after_attempt(5),
        reraise=True,
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


# ---------- time -------------

def now_ms() -> int:
    return int(time.time() * 1000)


# ---------- ids -------------

def generate_id(prefix: str) -> str:
    return f"{prefix}_{now_ms()}_{uuid.uuid4().hex[:9]}"


def generate_profile_id(family: str | None = None) -> str:
    return generate_id(f"{family or 'profile'}_profile")
