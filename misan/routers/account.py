"""Account routes: signup, status, token consumption, health."""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from db.models import UserProfile
from misan.core.auth import get_current_user
from misan.core.responses import result_response
from misan.services.account_service import (
    calculate_token_cost,
    check_user_status,
    consume_tokens,
    signup,
)

router = APIRouter(prefix="/api")


class SignupRequest(BaseModel):
    email: str
    name: Optional[str] = None
    grant_free_trial: bool = False


class ConsumeTokensRequest(BaseModel):
    amount: Optional[int] = None
    action: Optional[str] = None
    content_length: int = 0


@router.get("/health")
async def health():
    return {
        "success": True,
        "ok": True,
        "message": "Serveur Misan opérationnel",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/signup")
async def post_signup(req: SignupRequest):
    return result_response(signup(req.email, req.name, req.grant_free_trial))


@router.post("/check-user-status")
async def post_check_user_status(user: UserProfile = Depends(get_current_user)):
    return check_user_status(user)


@router.post("/consume-tokens")
async def post_consume_tokens(req: ConsumeTokensRequest, user: UserProfile = Depends(get_current_user)):
    amount = req.amount
    if amount is None and req.action:
        amount = calculate_token_cost(req.action, req.content_length)
    return result_response(consume_tokens(user, amount))
