from fastapi import APIRouter, Depends
from app.core.auth import get_current_user
from app.models import User
from app.schemas.user import MeResponse

router = APIRouter(tags=["auth"])


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return user
