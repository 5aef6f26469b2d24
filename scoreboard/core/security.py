from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from fastapi import HTTPException, status
from fastapi.security import HTTPBearer

from scoreboard.core.config import settings
from scoreboard.schemas import auth_schemas

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = "HS256"

# Tokens are issued out of band with create_access_token; there is no login route.
# Missing credentials are reported by get_current_user as a 401.
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def verify_token(token: str, credentials_exception: HTTPException) -> auth_schemas.TokenData:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = payload.get("sub") # 'sub' stores the user id as a string
        if user_id is None:
            raise credentials_exception
        token_data = auth_schemas.TokenData(user_id=int(user_id))
    except (JWTError, ValueError):
        raise credentials_exception
    return token_data

def credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
