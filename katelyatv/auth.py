# katelyatv/auth.py
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from katelyatv import config
from katelyatv.storage import IStorage


ALGORITHM = "HS256"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=config.access_token_expire_minutes())
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.secret_key(), algorithm=ALGORITHM)


def get_storage(request: Request) -> IStorage:
    return request.app.state.storage


async def authenticate_user(storage: IStorage, username: str, password: str) -> bool:
    # the owner's password comes from PASSWORD, never from the store
    if username == config.owner_username():
        expected = config.owner_password()
        return bool(expected) and hmac.compare_digest(expected.encode(), password.encode())
    # plaintext comparison happens in the storage layer
    return await storage.verify_user(username, password)


async def get_current_username(
    token: str = Depends(oauth2_scheme),
    storage: IStorage = Depends(get_storage),
) -> str:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.secret_key(), algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception
    username = payload.get("sub")
    if not username:
        raise credentials_exception
    # tokens of deleted accounts stop working immediately
    if username != config.owner_username() and not await storage.check_user_exist(username):
        raise credentials_exception
    return username


async def require_owner(username: str = Depends(get_current_username)) -> str:
    if username != config.owner_username():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Owner only")
    return username
