# katelyatv/user_settings.py
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel

from katelyatv.schemas import UserSettings

SettingsLike = Union[BaseModel, Mapping[str, Any]]

USER_SETTINGS_FIELDS = (
    "filter_adult_content",
    "theme",
    "language",
    "auto_play",
    "video_quality",
)

DEFAULT_USER_SETTINGS = UserSettings(
    filter_adult_content=True,
    theme="auto",
    language="zh-CN",
    auto_play=False,
    video_quality="auto",
)


def _present_fields(value: Optional[SettingsLike]) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if not isinstance(value, Mapping):
        return {}
    return {k: v for k, v in value.items() if k in USER_SETTINGS_FIELDS and v is not None}


def merge_user_settings(
    defaults: SettingsLike,
    current: Optional[SettingsLike],
    partial: Optional[SettingsLike],
) -> UserSettings:
    """
    Resolve every field as partial > current > defaults.
    A field set to None counts as absent.
    """
    base = _present_fields(defaults)
    stored = _present_fields(current)
    update = _present_fields(partial)

    merged = {}
    for field in USER_SETTINGS_FIELDS:
        if field in update:
            merged[field] = update[field]
        elif field in stored:
            merged[field] = stored[field]
        else:
            merged[field] = base[field]
    return UserSettings(**merged)
