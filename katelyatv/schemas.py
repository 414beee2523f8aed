# katelyatv/schemas.py
from pydantic import BaseModel
from typing import Any, Dict, Literal, Optional

# Play records, favorites, skip configs and the admin config are stored
# as opaque JSON objects.
PlayRecord = Dict[str, Any]
Favorite = Dict[str, Any]
EpisodeSkipConfig = Dict[str, Any]
AdminConfig = Dict[str, Any]

Theme = Literal["light", "dark", "auto"]


class UserSettings(BaseModel):
    filter_adult_content: bool
    theme: Theme
    language: str
    auto_play: bool
    video_quality: str


class UserSettingsUpdate(BaseModel):
    filter_adult_content: Optional[bool] = None
    theme: Optional[Theme] = None
    language: Optional[str] = None
    auto_play: Optional[bool] = None
    video_quality: Optional[str] = None


class User(BaseModel):
    username: str
    role: Literal["owner", "user"]
    created_at: str  # ISO-8601, "" when unknown


class UserRegister(BaseModel):
    username: str
    password: str


class PasswordChange(BaseModel):
    new_password: str


class SearchQuery(BaseModel):
    query: str


class Token(BaseModel):
    access_token: str
    token_type: str
