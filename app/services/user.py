from typing import Optional
import uuid
from datetime import datetime, timedelta

import jwt
from loguru import logger
from sqlmodel import Session, select

from app.core.config import settings
from app.db.schema import User
from app.models.auth import TokenAccess, TokenData
from app.models.user import UserCreate


class UserService:
    """
    Resolves the acting user from an access token.
    Credentials and sessions are handled by the identity provider; this
    service only signs and verifies the short-lived access tokens.
    """
    ALGORITHM = "HS256"

    def __init__(self, session: Session):
        self.session = session

    def _create_jwt(self, subject: str, expires_delta: timedelta, type: str) -> str:
        """Helper to sign JWTs with specific types."""
        to_encode = {
            "sub": str(subject),
            "exp": datetime.utcnow() + expires_delta,
            "type": type
        }
        return jwt.encode(to_encode, settings.secret_key, algorithm=self.ALGORITHM)

    def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        statement = select(User).where(User.id == user_id)
        return self.session.exec(statement).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        statement = select(User).where(User.email == email.lower())
        return self.session.exec(statement).first()

    def create_user(self, user_in: UserCreate) -> User:
        if self.get_user_by_email(user_in.email):
            raise ValueError("A user with this email already exists.")

        user = User(
            email=user_in.email.lower(),
            role=user_in.role,
            organization=user_in.organization,
            is_active=True
        )

        try:
            self.session.add(user)
            self.session.commit()
            self.session.refresh(user)
        except Exception as e:
            self.session.rollback()
            logger.error(f"User provisioning failed: {str(e)}")
            raise e

        logger.info(f"Provisioned {user.role.value} user {user.email}")
        return user

    def generate_access_token(self, user: User) -> TokenAccess:
        return TokenAccess(
            access_token=self._create_jwt(
                subject=user.id,
                expires_delta=timedelta(
                    minutes=settings.access_token_expire_minutes),
                type="access"
            )
        )

    def verify_access_token(self, token: str) -> Optional[TokenData]:
        try:
            payload = jwt.decode(token, settings.secret_key,
                                 algorithms=[self.ALGORITHM])
            user_id = payload.get("sub")
            token_type = payload.get("type")

            if not user_id or token_type != "access":
                return None

            return TokenData(user_id=uuid.UUID(user_id))
        except (jwt.PyJWTError, ValueError):
            return None

    def validate_user(self, user_id: uuid.UUID) -> Optional[User]:
        """Retrieves user and checks is_active flag."""
        user = self.get_user_by_id(user_id)
        if not user or not user.is_active:
            return None
        return user
