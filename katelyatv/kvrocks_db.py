# katelyatv/kvrocks_db.py
"""
Kvrocks-backed user storage.

Accounts are JSON records under user:{name} with a global user_list set;
play records, favorites and skip configs are enumerated by key pattern.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from katelyatv import codec, config
from katelyatv.keys import KvrocksKeys, strip_prefix
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


class KvrocksStorage:
    def __init__(self, client: aioredis.Redis, owner_username: Optional[str] = None):
        self.client = client
        self.keys = KvrocksKeys()
        self._owner_username = owner_username

    async def _retry(self, operation):
        return await with_retry(operation, label="Kvrocks")

    async def _scan(self, pattern: str) -> List[str]:
        return [key async for key in self.client.scan_iter(match=pattern)]

    async def _get_json(self, key: str):
        raw = await self._retry(lambda: self.client.get(key))
        return codec.loads(raw)

    async def _get_all(self, pattern: str, prefix: str) -> Dict[str, dict]:
        keys = await self._retry(lambda: self._scan(pattern))
        if not keys:
            return {}
        values = await self._retry(lambda: self.client.mget(keys))
        result = {}
        for full_key, raw in zip(keys, values):
            if raw:
                result[strip_prefix(full_key, prefix)] = codec.loads(raw)
        return result

    # --- Play records ---

    async def get_play_record(self, username: str, key: str) -> Optional[PlayRecord]:
        return await self._get_json(self.keys.pr(username, key))

    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None:
        await self._retry(lambda: self.client.set(self.keys.pr(username, key), codec.dumps(record)))

    async def get_all_play_records(self, username: str) -> Dict[str, PlayRecord]:
        return await self._get_all(self.keys.pr_pattern(username), self.keys.pr_prefix(username))

    async def delete_play_record(self, username: str, key: str) -> None:
        await self._retry(lambda: self.client.delete(self.keys.pr(username, key)))

    # --- Favorites ---

    async def get_favorite(self, username: str, key: str) -> Optional[Favorite]:
        return await self._get_json(self.keys.fav(username, key))

    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None:
        await self._retry(lambda: self.client.set(self.keys.fav(username, key), codec.dumps(favorite)))

    async def get_all_favorites(self, username: str) -> Dict[str, Favorite]:
        return await self._get_all(self.keys.fav_pattern(username), self.keys.fav_prefix(username))

    async def delete_favorite(self, username: str, key: str) -> None:
        await self._retry(lambda: self.client.delete(self.keys.fav(username, key)))

    # --- Search history ---

    async def get_search_history(self, username: str) -> List[str]:
        items = await self._retry(lambda: self.client.lrange(self.keys.search_history(username), 0, -1))
        return [str(item) for item in items]

    async def add_search_history(self, username: str, query: str) -> None:
        key = self.keys.search_history(username)

        # three separate commands, not a transaction
        async def push():
            await self.client.lrem(key, 0, query)
            await self.client.lpush(key, query)
            await self.client.ltrim(key, 0, SEARCH_HISTORY_LIMIT - 1)

        await self._retry(push)

    async def delete_search_history(self, username: str, query: Optional[str] = None) -> None:
        key = self.keys.search_history(username)
        if query:
            await self._retry(lambda: self.client.lrem(key, 0, query))
        else:
            await self._retry(lambda: self.client.delete(key))

    # --- Skip configs ---

    async def get_skip_config(self, username: str, key: str) -> Optional[EpisodeSkipConfig]:
        return await self._get_json(self.keys.skip_config(username, key))

    async def set_skip_config(self, username: str, key: str, skip_config: EpisodeSkipConfig) -> None:
        await self._retry(
            lambda: self.client.set(self.keys.skip_config(username, key), codec.dumps(skip_config))
        )

    async def delete_skip_config(self, username: str, key: str) -> None:
        await self._retry(lambda: self.client.delete(self.keys.skip_config(username, key)))

    async def get_all_skip_configs(self, username: str) -> Dict[str, EpisodeSkipConfig]:
        return await self._get_all(
            self.keys.skip_config_pattern(username), self.keys.skip_config_prefix(username)
        )

    # --- Users ---

    async def _get_account(self, username: str) -> Optional[dict]:
        account = await self._get_json(self.keys.account(username))
        return account if isinstance(account, dict) else None

    async def _set_account(self, username: str, account: dict) -> None:
        async def write():
            await self.client.set(self.keys.account(username), codec.dumps(account))
            await self.client.sadd(self.keys.USER_LIST, username)

        await self._retry(write)

    async def register_user(self, username: str, password: str) -> None:
        account = {"username": username, "password": password, "created_at": codec.timestamp_ms()}
        await self._set_account(username, account)

    async def verify_user(self, username: str, password: str) -> bool:
        account = await self._get_account(username)
        if account is None:
            return False
        stored = account.get("password")
        return bool(stored) and str(stored) == password

    async def check_user_exist(self, username: str) -> bool:
        return await self._get_account(username) is not None

    async def change_password(self, username: str, new_password: str) -> None:
        account = await self._get_account(username)
        if account is None:
            return
        account["password"] = new_password
        await self._set_account(username, account)

    async def delete_user(self, username: str) -> None:
        patterns = [
            self.keys.pr_pattern(username),
            self.keys.fav_pattern(username),
            self.keys.skip_config_pattern(username),
        ]

        # the whole cascade is re-run on a transient failure; every step is idempotent
        async def cascade():
            await self.client.delete(
                self.keys.account(username),
                self.keys.search_history(username),
                self.keys.settings(username),
            )
            await self.client.srem(self.keys.USER_LIST, username)
            for pattern in patterns:
                keys = await self._scan(pattern)
                if keys:
                    await self.client.delete(*keys)

        await self._retry(cascade)

    async def _created_at(self, username: str) -> str:
        try:
            account = await self._get_account(username)
            if account and account.get("created_at") not in (None, ""):
                return codec.iso_timestamp(account["created_at"])
        except (RedisError, OSError, ValueError, TypeError, OverflowError) as exc:
            logger.warning("Could not read created_at for %s: %s", username, exc)
        return ""

    async def get_all_users(self) -> List[User]:
        usernames = await self._retry(lambda: self.client.smembers(self.keys.USER_LIST))
        owner = self._owner_username or config.owner_username()
        names = sorted(str(name) for name in usernames)
        created = await asyncio.gather(*(self._created_at(name) for name in names))
        return [
            User(username=name, role="owner" if name == owner else "user", created_at=created_at)
            for name, created_at in zip(names, created)
        ]

    # --- Admin config ---

    async def get_admin_config(self) -> Optional[AdminConfig]:
        return await self._get_json(self.keys.ADMIN_CONFIG)

    async def set_admin_config(self, admin_config: AdminConfig) -> None:
        await self._retry(lambda: self.client.set(self.keys.ADMIN_CONFIG, codec.dumps(admin_config)))

    # --- User settings ---

    async def get_user_settings(self, username: str) -> UserSettings:
        stored = await self._get_json(self.keys.settings(username))
        return merge_user_settings(DEFAULT_USER_SETTINGS, stored, None)

    async def set_user_settings(self, username: str, settings: UserSettings) -> None:
        await self._retry(
            lambda: self.client.set(self.keys.settings(username), codec.dumps(settings.model_dump()))
        )

    async def update_user_settings(self, username: str, settings: UserSettingsUpdate) -> None:
        # read-modify-write, last writer wins
        current = await self.get_user_settings(username)
        updated = merge_user_settings(DEFAULT_USER_SETTINGS, current, settings)
        await self.set_user_settings(username, updated)
