# katelyatv/clients.py
import logging

from redis import asyncio as aioredis

from katelyatv import config

logger = logging.getLogger(__name__)


def create_client(url: str, token: str) -> aioredis.Redis:
    """
    Async client for a Redis-protocol endpoint; the access token is the AUTH password.
    No connection is opened until the first command.
    """
    return aioredis.from_url(url, password=token, encoding="utf8", decode_responses=True)


def create_backend_client(storage_type: str) -> aioredis.Redis:
    url, token = config.backend_credentials(storage_type)
    logger.info("Creating %s client", storage_type)
    return create_client(url, token)


def create_kvrocks_client() -> aioredis.Redis:
    return create_backend_client("kvrocks")


def create_redis_client() -> aioredis.Redis:
    return create_backend_client("redis")
