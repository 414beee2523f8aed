# katelyatv/redis_db.py
"""
Redis-backed user storage.

Credentials are a bare password under u:{name}:pwd (users are discovered by
scanning u:*:pwd), and skip configs are enumerated through an explicit
index set that set/delete keep in step with the values.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from katelyatv import codec, config
from katelyatv.keys import RedisKeys, strip_prefix
from katelyatv.retry import with_retry
from katelyatv.schemas import (
    AdminConfig,
    EpisodeSkipConfig,
    Favorite,
    PlayRecord,
    User,
    UserSettings,
    UserSettingsUpdate,
)
from katelyatv.user_settings import DEFAULT_USER_SETTINGS, merge_user_settings

logger = logging.getLogger(__name__)

SEARCH_HISTORY_LIMIT = 20


class RedisStorage:
    def __init__(self, client: aioredis.Redis, owner_username: Optional[str] = None):
        self.client = client
        self.keys = RedisKeys()
        self._owner_username = owner_username

    async def _scan(self, pattern: str) -> List[str]:
        return await with_retry(lambda: self._collect(pattern))

    async def _collect(self, pattern: str) -> List[str]:
        return [key async for key in self.client.scan_iter(match=pattern)]

    async def _get_json(self, key: str):
        raw = await with_retry(lambda: self.client.get(key))
        return codec.loads(raw)

    async def _set_json(self, key: str, value) -> None:
        await with_retry(lambda: self.client.set(key, codec.dumps(value)))

    async def _delete(self, *keys: str) -> None:
        if keys:
            await with_retry(lambda: self.client.delete(*keys))

    async def _get_all(self, pattern: str, prefix: str) -> Dict[str, dict]:
        keys = await self._scan(pattern)
        if not keys:
            return {}
        values = await with_retry(lambda: self.client.mget(keys))
        result = {}
        for full_key, raw in zip(keys, values):
            if raw:
                result[strip_prefix(full_key, prefix)] = codec.loads(raw)
        return result

    # --- Play records ---

    async def get_play_record(self, username: str, key: str) -> Optional[PlayRecord]:
        return await self._get_json(self.keys.pr(username, key))

    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None:
        await self._set_json(self.keys.pr(username, key), record)

    async def get_all_play_records(self, username: str) -> Dict[str, PlayRecord]:
        return await self._get_all(self.keys.pr_pattern(username), self.keys.pr_prefix(username))

    async def delete_play_record(self, username: str, key: str) -> None:
        await self._delete(self.keys.pr(username, key))

    # --- Favorites ---

    async def get_favorite(self, username: str, key: str) -> Optional[Favorite]:
        return await self._get_json(self.keys.fav(username, key))

    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None:
        await self._set_json(self.keys.fav(username, key), favorite)

    async def get_all_favorites(self, username: str) -> Dict[str, Favorite]:
        return await self._get_all(self.keys.fav_pattern(username), self.keys.fav_prefix(username))

    async def delete_favorite(self, username: str, key: str) -> None:
        await self._delete(self.keys.fav(username, key))

    # --- Users ---

    async def register_user(self, username: str, password: str) -> None:
        await with_retry(lambda: self.client.set(self.keys.password(username), password))
        await with_retry(
            lambda: self.client.set(self.keys.created_at(username), str(codec.timestamp_ms()))
        )

    async def verify_user(self, username: str, password: str) -> bool:
        stored = await with_retry(lambda: self.client.get(self.keys.password(username)))
        return bool(stored) and str(stored) == password

    async def check_user_exist(self, username: str) -> bool:
        exists = await with_retry(lambda: self.client.exists(self.keys.password(username)))
        return exists == 1

    async def change_password(self, username: str, new_password: str) -> None:
        if not await self.check_user_exist(username):
            return
        await with_retry(lambda: self.client.set(self.keys.password(username), new_password))

    async def delete_user(self, username: str) -> None:
        # sequential deletes without a transaction; a failure part-way leaves the rest in place
        await self._delete(self.keys.password(username), self.keys.created_at(username))
        await self._delete(self.keys.search_history(username))

        await self._delete(*await self._scan(self.keys.pr_pattern(username)))
        await self._delete(*await self._scan(self.keys.fav_pattern(username)))

        index_key = self.keys.skip_config_index(username)
        skip_keys = await with_retry(lambda: self.client.smembers(index_key))
        await self._delete(*(self.keys.skip_config(username, k) for k in skip_keys))
        await self._delete(index_key)

        await self._delete(self.keys.settings(username))

    async def _created_at(self, username: str) -> str:
        try:
            timestamp = await with_retry(lambda: self.client.get(self.keys.created_at(username)))
            if timestamp:
                return codec.iso_timestamp(timestamp)
        except (RedisError, OSError, ValueError, TypeError, OverflowError) as exc:
            logger.warning("Could not read created_at for %s: %s", username, exc)
        return ""

    async def get_all_users(self) -> List[User]:
        keys = await self._scan(self.keys.PASSWORD_PATTERN)
        owner = self._owner_username or config.owner_username()
        names = sorted(
            {name for name in map(self.keys.username_from_password_key, keys) if name is not None}
        )
        created = await asyncio.gather(*(self._created_at(name) for name in names))
        return [
            User(username=name, role="owner" if name == owner else "user", created_at=created_at)
            for name, created_at in zip(names, created)
        ]

    # --- User settings ---

    async def get_user_settings(self, username: str) -> UserSettings:
        stored = await self._get_json(self.keys.settings(username))
        return merge_user_settings(DEFAULT_USER_SETTINGS, stored, None)

    async def set_user_settings(self, username: str, settings: UserSettings) -> None:
        await self._set_json(self.keys.settings(username), settings.model_dump())

    async def update_user_settings(self, username: str, settings: UserSettingsUpdate) -> None:
        # read-modify-write, last writer wins
        current = await self.get_user_settings(username)
        updated = merge_user_settings(DEFAULT_USER_SETTINGS, current, settings)
        await self.set_user_settings(username, updated)

    # --- Search history ---

    async def get_search_history(self, username: str) -> List[str]:
        items = await with_retry(lambda: self.client.lrange(self.keys.search_history(username), 0, -1))
        return [str(item) for item in items]

    async def add_search_history(self, username: str, query: str) -> None:
        # not atomic: concurrent pushes may interleave until the next call
        key = self.keys.search_history(username)
        await with_retry(lambda: self.client.lrem(key, 0, query))
        await with_retry(lambda: self.client.lpush(key, query))
        await with_retry(lambda: self.client.ltrim(key, 0, SEARCH_HISTORY_LIMIT - 1))

    async def delete_search_history(self, username: str, query: Optional[str] = None) -> None:
        key = self.keys.search_history(username)
        if query:
            await with_retry(lambda: self.client.lrem(key, 0, query))
        else:
            await self._delete(key)

    # --- Admin config ---

    async def get_admin_config(self) -> Optional[AdminConfig]:
        return await self._get_json(self.keys.ADMIN_CONFIG)

    async def set_admin_config(self, admin_config: AdminConfig) -> None:
        await self._set_json(self.keys.ADMIN_CONFIG, admin_config)

    # --- Skip configs ---

    async def get_skip_config(self, username: str, key: str) -> Optional[EpisodeSkipConfig]:
        return await self._get_json(self.keys.skip_config(username, key))

    async def set_skip_config(self, username: str, key: str, skip_config: EpisodeSkipConfig) -> None:
        # value and index entry are two commands; a crash in between leaves the index stale
        async def write():
            await self.client.set(self.keys.skip_config(username, key), codec.dumps(skip_config))
            await self.client.sadd(self.keys.skip_config_index(username), key)

        await with_retry(write)

    async def get_all_skip_configs(self, username: str) -> Dict[str, EpisodeSkipConfig]:
        members = await with_retry(lambda: self.client.smembers(self.keys.skip_config_index(username)))
        if not members:
            return {}
        names = sorted(members)
        values = await with_retry(
            lambda: self.client.mget([self.keys.skip_config(username, k) for k in names])
        )
        return {name: codec.loads(raw) for name, raw in zip(names, values) if raw}

    async def delete_skip_config(self, username: str, key: str) -> None:
        async def remove():
            await self.client.delete(self.keys.skip_config(username, key))
            await self.client.srem(self.keys.skip_config_index(username), key)

        await with_retry(remove)
