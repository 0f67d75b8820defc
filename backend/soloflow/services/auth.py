from uuid import UUID

from sqlmodel import Session, select

from soloflow.core.logging_setup import logger
from soloflow.models.base import utcnow
from soloflow.models.user import User
from soloflow.schemas.auth import LoginRequest, RefreshRequest, RegisterRequest, Token
from soloflow.services.subscription import SubscriptionService
from soloflow.utils.email_validation import normalize_email
from soloflow.utils.security import (
    TokenType,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)


class AuthService:
    def __init__(self, session: Session, subscriptions: SubscriptionService | None = None) -> None:
        self.session = session
        self.subscriptions = subscriptions or SubscriptionService(session)

    def register(self, payload: RegisterRequest) -> tuple[User, Token]:
        email = normalize_email(payload.email)
        existing_user = self.session.exec(select(User).where(User.email == email)).first()
        if existing_user:
            raise ValueError("User already exists")

        user = User(
            email=email,
            full_name=payload.full_name.strip(),
            currency=(payload.currency or "INR").upper(),
            password_hash=get_password_hash(payload.password),
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info("Registered user %s", user.id)

        self.subscriptions.fetch(user.id)
        return user, self._build_tokens(user)

    def authenticate(self, payload: LoginRequest) -> tuple[User, Token]:
        email = normalize_email(payload.username)
        user = self.session.exec(select(User).where(User.email == email)).first()

        if not user or not user.is_active:
            raise ValueError("Invalid credentials")

        if not verify_password(payload.password, user.password_hash):
            raise ValueError("Invalid credentials")

        user.last_login_at = utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)

        # Accounts created before billing existed get their trial record on first login.
        self.subscriptions.fetch(user.id)
        return user, self._build_tokens(user)

    def refresh(self, payload: RefreshRequest) -> Token:
        token_data = decode_token(payload.refresh_token)
        if token_data.get("token_type") != TokenType.REFRESH.value:
            raise ValueError("Invalid token type")

        try:
            user_id = UUID(str(token_data.get("sub")))
        except ValueError as exc:
            raise ValueError("Invalid token") from exc
        user = self.session.get(User, user_id)
        if not user or not user.is_active:
            raise ValueError("Invalid token")

        return self._build_tokens(user)

    def _build_tokens(self, user: User) -> Token:
        return Token(
            access_token=create_access_token(str(user.id)),
            refresh_token=create_refresh_token(str(user.id)),
        )
