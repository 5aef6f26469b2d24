from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from scoreboard.core import security
from scoreboard.core.database import SessionLocal
from scoreboard.models.user import User

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security.bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = security.credentials_error()
    if credentials is None:
        raise credentials_exception
    token_data = security.verify_token(credentials.credentials, credentials_exception)
    user = db.query(User).filter(User.id == token_data.user_id).first()
    if user is None:
        raise credentials_exception
    return user

def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user

def get_client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None
