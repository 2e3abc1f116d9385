from fastapi import APIRouter, Depends, Response

from .deps import get_current_user, get_db, get_redis, get_token_claims
from .identity import check_credentials, create_user
from .models import ROLE_USER
from .schemas import SessionResponse, SignIn, SignUp, UserResponse
from .security import Principal, auth_secret, issue_token, revoke_token

router = APIRouter(prefix="/auth", tags=["Auth"])


def _user_response(user) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, name=user.name, role=user.role)


@router.post("/signup", status_code=201, response_model=SessionResponse)
async def signup(data: SignUp, db=Depends(get_db)):
    auth_secret()
    user = await create_user(db, data.email, data.password, name=data.name, role=ROLE_USER)
    token, expires_at = issue_token(user)
    return SessionResponse(user=_user_response(user), access_token=token, expires_at=expires_at)


@router.post("/signin", response_model=SessionResponse)
async def signin(data: SignIn, db=Depends(get_db)):
    auth_secret()
    user = await check_credentials(db, data.email, data.password)
    token, expires_at = issue_token(user)
    return SessionResponse(user=_user_response(user), access_token=token, expires_at=expires_at)


@router.get("/session", response_model=SessionResponse)
async def current_session(user: Principal = Depends(get_current_user)):
    return SessionResponse(
        user=UserResponse(id=user.user_id, email=user.email, name=user.name, role=user.role)
    )


@router.post("/signout", status_code=204)
async def signout(auth=Depends(get_token_claims), redis=Depends(get_redis)):
    _, claims = auth
    await revoke_token(redis, claims)
    return Response(status_code=204)
