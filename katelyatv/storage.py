# katelyatv/storage.py
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable

from redis import asyncio as aioredis

from katelyatv import clients, config
from katelyatv.kvrocks_db import KvrocksStorage
from katelyatv.redis_db import RedisStorage
from katelyatv.schemas import (
    AdminConfig,
    EpisodeSkipConfig,
    Favorite,
    PlayRecord,
    User,
    UserSettings,
    UserSettingsUpdate,
)


@runtime_checkable
class IStorage(Protocol):
    """
    Per-user data store shared by request handlers.

    Absence is reported as None / empty results; backend failures that
    survive the retry wrapper propagate as redis exceptions.
    """

    async def get_play_record(self, username: str, key: str) -> Optional[PlayRecord]: ...

    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None: ...

    async def get_all_play_records(self, username: str) -> Dict[str, PlayRecord]: ...

    async def delete_play_record(self, username: str, key: str) -> None: ...

    async def get_favorite(self, username: str, key: str) -> Optional[Favorite]: ...

    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None: ...

    async def get_all_favorites(self, username: str) -> Dict[str, Favorite]: ...

    async def delete_favorite(self, username: str, key: str) -> None: ...

    async def get_search_history(self, username: str) -> List[str]: ...

    async def add_search_history(self, username: str, query: str) -> None: ...

    async def delete_search_history(self, username: str, query: Optional[str] = None) -> None: ...

    async def get_skip_config(self, username: str, key: str) -> Optional[EpisodeSkipConfig]: ...

    async def set_skip_config(self, username: str, key: str, skip_config: EpisodeSkipConfig) -> None: ...

    async def delete_skip_config(self, username: str, key: str) -> None: ...

    async def get_all_skip_configs(self, username: str) -> Dict[str, EpisodeSkipConfig]: ...

    async def register_user(self, username: str, password: str) -> None: ...

    async def verify_user(self, username: str, password: str) -> bool: ...

    async def check_user_exist(self, username: str) -> bool: ...

    async def change_password(self, username: str, new_password: str) -> None: ...

    async def delete_user(self, username: str) -> None: ...

    async def get_all_users(self) -> List[User]: ...

    async def get_admin_config(self) -> Optional[AdminConfig]: ...

    async def set_admin_config(self, admin_config: AdminConfig) -> None: ...

    async def get_user_settings(self, username: str) -> UserSettings: ...

    async def set_user_settings(self, username: str, settings: UserSettings) -> None: ...

    async def update_user_settings(self, username: str, settings: UserSettingsUpdate) -> None: ...


STORAGE_CLASSES = {
    "kvrocks": KvrocksStorage,
    "redis": RedisStorage,
}


def build_storage(
    storage_type: Optional[str] = None,
    client: Optional[aioredis.Redis] = None,
) -> Union[KvrocksStorage, RedisStorage]:
    """
    Select the adapter for STORAGE_TYPE (or the given type) and bind it to a client.
    Without a client one is created from the backend's URL / token settings.
    """
    kind = storage_type or config.storage_type()
    storage_cls = STORAGE_CLASSES.get(kind)
    if storage_cls is None:
        raise config.ConfigurationError(f"Unknown storage type: {kind!r}")
    if client is None:
        client = clients.create_backend_client(kind)
    return storage_cls(client)
