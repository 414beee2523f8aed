# katelyatv/keys.py
"""
Key layouts for the two backends.

Both stores share the play record / favorite / settings keys but differ in
search history, skip configs, accounts and the admin config.
Pattern helpers escape the username so glob characters in a name
cannot match other users' keys.
"""
import re
from typing import Optional

_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def escape_glob(value: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def strip_prefix(full_key: str, prefix: str) -> str:
    return full_key[len(prefix):] if full_key.startswith(prefix) else full_key


class _UserKeys:
    """Keys common to both layouts."""

    def pr_prefix(self, user: str) -> str:
        return f"u:{user}:pr:"

    def pr(self, user: str, key: str) -> str:
        return self.pr_prefix(user) + key

    def pr_pattern(self, user: str) -> str:
        return f"u:{escape_glob(user)}:pr:*"

    def fav_prefix(self, user: str) -> str:
        return f"u:{user}:fav:"

    def fav(self, user: str, key: str) -> str:
        return self.fav_prefix(user) + key

    def fav_pattern(self, user: str) -> str:
        return f"u:{escape_glob(user)}:fav:*"

    def settings(self, user: str) -> str:
        return f"u:{user}:settings"


class KvrocksKeys(_UserKeys):
    USER_LIST = "user_list"
    ADMIN_CONFIG = "admin_config"

    def search_history(self, user: str) -> str:
        return f"u:{user}:search_history"

    def skip_config_prefix(self, user: str) -> str:
        return f"u:{user}:skip_config:"

    def skip_config(self, user: str, key: str) -> str:
        return self.skip_config_prefix(user) + key

    def skip_config_pattern(self, user: str) -> str:
        return f"u:{escape_glob(user)}:skip_config:*"

    def account(self, user: str) -> str:
        return f"user:{user}"


class RedisKeys(_UserKeys):
    ADMIN_CONFIG = "admin:config"
    PASSWORD_PATTERN = "u:*:pwd"

    _PASSWORD_KEY = re.compile(r"^u:(.+?):pwd$")

    def search_history(self, user: str) -> str:
        return f"u:{user}:sh"

    def skip_config(self, user: str, key: str) -> str:
        return f"katelyatv:skip_config:{user}:{key}"

    def skip_config_index(self, user: str) -> str:
        return f"katelyatv:skip_configs:{user}"

    def password(self, user: str) -> str:
        return f"u:{user}:pwd"

    def created_at(self, user: str) -> str:
        return f"u:{user}:created_at"

    def username_from_password_key(self, full_key: str) -> Optional[str]:
        match = self._PASSWORD_KEY.match(full_key)
        return match.group(1) if match else None
