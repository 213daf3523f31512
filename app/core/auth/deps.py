from typing import Optional

from bson import ObjectId
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from app.core.models.supplier import SupplierAccount
from app.core.notifications.connection_manager import NotificationSink
from app.core.schemas.auth import CurrentUser
from app.core.setting import config

# Tokens are issued by the auth service; we only verify them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def resolve_user_from_token(token: str) -> Optional[CurrentUser]:
    """Decode a bearer token and load the supplier it belongs to."""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        return None

    account = await SupplierAccount.get(ObjectId(user_id))
    if account is None:
        return None

    return CurrentUser(
        id=str(account.id),
        email=account.email,
        role=account.role,
        plan=account.plan,
        timezone=account.timezone,
        full_name=account.full_name,
    )


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """
    Dependency that decodes the JWT token and fetches the user's current data.
    """
    user = await resolve_user_from_token(token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_notifier(request: Request) -> Optional[NotificationSink]:
    """The notification sink created by the application lifespan."""
    return getattr(request.app.state, "notifier", None)
