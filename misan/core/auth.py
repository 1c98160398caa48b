"""Bearer-token authentication dependencies."""
from typing import Optional

from fastapi import Depends, Header, HTTPException

from db.models import UserProfile
from misan.core.state import store


def get_current_user(authorization: Optional[str] = Header(None)) -> UserProfile:
    """Resolve `Authorization: Bearer <access_token>` to a user profile.

    Raises:
        HTTPException 401 when the header is missing or the token is unknown
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Token manquant")

    access_token = authorization[len("Bearer "):].strip()
    user = store.get_user_by_token(access_token) if access_token else None
    if user is None:
        raise HTTPException(status_code=401, detail="Token invalide")
    return user


def require_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Accès refusé")
    return user
