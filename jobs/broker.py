"""
Dramatiq broker configuration.

Redis-based message broker for the retry worker actors.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, ShutdownNotifications
from loguru import logger

from app.utils.redis_utils import get_redis_url, get_redis_url_masked

redis_broker = RedisBroker(url=get_redis_url())

# ShutdownNotifications: lets a running cycle finish its current item
# CurrentMessage: gives actors access to the message being processed
# No custom Retries: actors declare max_retries=0. Retry state lives in the
# database and the next scheduled tick picks up where a failed cycle stopped.
redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(f"Dramatiq broker initialized: {get_redis_url_masked()}")
