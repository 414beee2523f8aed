# katelyatv/main.py
"""
uvicorn katelyatv.main:app --host 0.0.0.0 --port 8000
STORAGE_TYPE selects redis (REDIS_URL / REDIS_TOKEN) or kvrocks (KVROCKS_URL / KVROCKS_TOKEN).
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from redis.exceptions import RedisError

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from katelyatv import auth, config, schemas
from katelyatv.auth import get_current_username, get_storage, require_owner
from katelyatv.config import ConfigurationError
from katelyatv.logging_config import configure_logging
from katelyatv.storage import IStorage, build_storage

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title="KatelyaTV")
app.state.limiter = limiter
app.state.storage = None


# Rate limit error handler
@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests", "detail": str(exc.detail)},
    )


# Backend still failing after retries
@app.exception_handler(RedisError)
def storage_unavailable_handler(request: Request, exc: RedisError):
    logger.error("Storage error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"error": "Storage unavailable"})


@app.exception_handler(ConfigurationError)
def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error: %s", exc)
    return JSONResponse(status_code=503, content={"error": "Storage not configured"})


# One client per process, built once and closed on shutdown
@app.on_event("startup")
async def startup_event():
    configure_logging()
    if app.state.storage is None:
        app.state.storage = build_storage()
    logger.info("Storage ready: %s", type(app.state.storage).__name__)


@app.on_event("shutdown")
async def shutdown_event():
    storage = app.state.storage
    client = getattr(storage, "client", None)
    if client is not None:
        await client.aclose()


# --- Auth Routes ---
@app.post("/api/login", response_model=schemas.Token)
@limiter.limit("5/minute")
async def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    storage: IStorage = Depends(get_storage),
):
    if not await auth.authenticate_user(storage, form_data.username, form_data.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    token = auth.create_access_token(data={"sub": form_data.username})
    return {"access_token": token, "token_type": "bearer"}


@app.post("/api/register", status_code=201)
async def register(payload: schemas.UserRegister, storage: IStorage = Depends(get_storage)):
    if payload.username == config.owner_username():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Reserved username")
    if await storage.check_user_exist(payload.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
    await storage.register_user(payload.username, payload.password)
    return {"ok": True}


@app.post("/api/change-password")
async def change_password(
    payload: schemas.PasswordChange,
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    if username == config.owner_username():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Owner password is set by PASSWORD")
    await storage.change_password(username, payload.new_password)
    return {"ok": True}


# --- Play Record Routes ---
@app.get("/api/playrecords")
async def get_play_records(
    key: Optional[str] = None,
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    if key is None:
        return await storage.get_all_play_records(username)
    record = await storage.get_play_record(username, key)
    if record is None:
        raise HTTPException(status_code=404, detail="Play record not found")
    return record


@app.post("/api/playrecords")
async def save_play_record(
    key: str = Query(..., min_length=1),
    record: Dict[str, Any] = Body(...),
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.set_play_record(username, key, record)
    return {"ok": True}


@app.delete("/api/playrecords", status_code=204)
async def delete_play_record(
    key: str = Query(..., min_length=1),
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.delete_play_record(username, key)


# --- Favorite Routes ---
@app.get("/api/favorites")
async def get_favorites(
    key: Optional[str] = None,
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    if key is None:
        return await storage.get_all_favorites(username)
    favorite = await storage.get_favorite(username, key)
    if favorite is None:
        raise HTTPException(status_code=404, detail="Favorite not found")
    return favorite


@app.post("/api/favorites")
async def save_favorite(
    key: str = Query(..., min_length=1),
    favorite: Dict[str, Any] = Body(...),
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.set_favorite(username, key, favorite)
    return {"ok": True}


@app.delete("/api/favorites", status_code=204)
async def delete_favorite(
    key: str = Query(..., min_length=1),
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.delete_favorite(username, key)


# --- Search History Routes ---
@app.get("/api/searchhistory", response_model=List[str])
async def get_search_history(
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    return await storage.get_search_history(username)


@app.post("/api/searchhistory", response_model=List[str])
async def add_search_history(
    payload: schemas.SearchQuery,
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query must not be empty")
    await storage.add_search_history(username, query)
    return await storage.get_search_history(username)


@app.delete("/api/searchhistory", status_code=204)
async def delete_search_history(
    query: Optional[str] = None,
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.delete_search_history(username, query)


# --- Skip Config Routes ---
@app.get("/api/skipconfigs")
async def get_skip_configs(
    key: Optional[str] = None,
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    if key is None:
        return await storage.get_all_skip_configs(username)
    skip_config = await storage.get_skip_config(username, key)
    if skip_config is None:
        raise HTTPException(status_code=404, detail="Skip config not found")
    return skip_config


@app.post("/api/skipconfigs")
async def save_skip_config(
    key: str = Query(..., min_length=1),
    skip_config: Dict[str, Any] = Body(...),
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.set_skip_config(username, key, skip_config)
    return {"ok": True}


@app.delete("/api/skipconfigs", status_code=204)
async def delete_skip_config(
    key: str = Query(..., min_length=1),
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.delete_skip_config(username, key)


# --- User Settings Routes ---
@app.get("/api/user/settings", response_model=schemas.UserSettings)
async def get_user_settings(
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    return await storage.get_user_settings(username)


@app.put("/api/user/settings", response_model=schemas.UserSettings)
async def replace_user_settings(
    settings: schemas.UserSettings,
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.set_user_settings(username, settings)
    return await storage.get_user_settings(username)


@app.patch("/api/user/settings", response_model=schemas.UserSettings)
async def update_user_settings(
    settings: schemas.UserSettingsUpdate,
    username: str = Depends(get_current_username),
    storage: IStorage = Depends(get_storage),
):
    await storage.update_user_settings(username, settings)
    return await storage.get_user_settings(username)


# --- Admin Routes ---
@app.get("/api/admin/users", response_model=List[schemas.User])
async def list_users(
    owner: str = Depends(require_owner),
    storage: IStorage = Depends(get_storage),
):
    return await storage.get_all_users()


@app.delete("/api/admin/users/{target}", status_code=204)
async def delete_user(
    target: str,
    owner: str = Depends(require_owner),
    storage: IStorage = Depends(get_storage),
):
    if target == owner:
        raise HTTPException(status_code=400, detail="The owner account cannot be deleted")
    if not await storage.check_user_exist(target):
        raise HTTPException(status_code=404, detail="User not found")
    await storage.delete_user(target)


@app.get("/api/admin/config")
async def get_admin_config(
    owner: str = Depends(require_owner),
    storage: IStorage = Depends(get_storage),
):
    admin_config = await storage.get_admin_config()
    if admin_config is None:
        raise HTTPException(status_code=404, detail="Admin config not set")
    return admin_config


@app.put("/api/admin/config")
async def save_admin_config(
    admin_config: Dict[str, Any] = Body(...),
    owner: str = Depends(require_owner),
    storage: IStorage = Depends(get_storage),
):
    await storage.set_admin_config(admin_config)
    return {"ok": True}
