from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session

from soloflow.api.deps import get_current_active_user, get_db
from soloflow.models.user import User
from soloflow.schemas.auth import LoginRequest, RefreshRequest, RegisterRequest, Token
from soloflow.schemas.user import UserRead
from soloflow.services.audit import AuditService
from soloflow.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


def _services(session: Session) -> tuple[AuthService, AuditService]:
    return AuthService(session), AuditService(session)


def _client_info(request: Request) -> tuple[str | None, str | None]:
    return (request.client.host if request.client else None, request.headers.get("user-agent"))


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, request: Request, session: Session = Depends(get_db)) -> Token:
    auth_service, audit_service = _services(session)
    try:
        user, token = auth_service.register(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    ip_address, user_agent = _client_info(request)
    audit_service.record_auth(user_id=user.id, event_type="register", ip_address=ip_address, user_agent=user_agent)
    return token


@router.post("/login", response_model=Token)
def login(
    payload: LoginRequest,
    request: Request,
    session: Session = Depends(get_db),
) -> Token:
    auth_service, audit_service = _services(session)
    ip_address, user_agent = _client_info(request)
    try:
        user, token = auth_service.authenticate(payload)
    except ValueError as exc:
        audit_service.record_auth(
            user_id=None,
            event_type="login",
            ip_address=ip_address,
            user_agent=user_agent,
            success=False,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    audit_service.record_auth(user_id=user.id, event_type="login", ip_address=ip_address, user_agent=user_agent)
    return token


@router.post("/refresh", response_model=Token)
def refresh(payload: RefreshRequest, session: Session = Depends(get_db)) -> Token:
    auth_service, _ = _services(session)
    try:
        return auth_service.refresh(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


@router.get("/me", response_model=UserRead)
def me(current_user: User = Depends(get_current_active_user)) -> UserRead:
    return UserRead.model_validate(current_user, from_attributes=True)
