import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.common.exceptions import AppError, Conflict, ServiceError, Unauthenticated
from app.core.config import settings
from app.modules.auth.access import MembershipStatus
from app.modules.auth.models import User, UserCompany
from app.modules.auth.schemas import TokenResponse, UserCompanyOut, UserCreate, UserOut
from app.modules.auth.utils import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


class AuthService:
    """
    Registro, login y datos del usuario autenticado.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_user(self, user_data: UserCreate) -> User:
        existing_user = self.db.query(User).filter(User.email == user_data.email).first()
        if existing_user:
            raise Conflict("Este email ya está registrado")

        try:
            user = User(
                email=user_data.email,
                password=hash_password(user_data.password),
                first_name=user_data.first_name,
                last_name=user_data.last_name,
            )
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"User registered: {user.email}")
            return user
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error registering user {user_data.email}: {e}", exc_info=True)
            raise ServiceError("Error al registrar el usuario")

    def login(self, email: str, password: str) -> TokenResponse:
        """
        Login de usuario con listado de empresas activas.
        """
        user = self.db.query(User).options(
            selectinload(User.user_companies).selectinload(UserCompany.company)
        ).filter(User.email == email).first()

        if not user or not verify_password(password, user.password):
            raise Unauthenticated("Credenciales incorrectas")

        if not user.is_active:
            raise Unauthenticated("Cuenta inactiva")

        try:
            user.last_login = datetime.now(timezone.utc)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating last login for {email}: {e}", exc_info=True)
            raise ServiceError("Error al iniciar sesión")

        token_data = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
        }
        access_token = create_access_token(token_data)

        return TokenResponse(
            access_token=access_token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserOut.model_validate(user),
            companies=self._active_companies(user),
        )

    def get_user(self, user_id) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise Unauthenticated("Usuario inválido")
        return user

    def _active_companies(self, user: User) -> List[UserCompanyOut]:
        companies = []
        for uc in user.user_companies:
            if uc.is_active and uc.status == MembershipStatus.ACTIVE:
                companies.append(UserCompanyOut(
                    id=uc.id,
                    company_id=uc.company_id,
                    access_level=uc.access_level,
                    status=uc.status,
                    is_active=uc.is_active,
                    joined_at=uc.joined_at,
                    company_name=uc.company.name,
                ))
        return companies

    def me(self, user_id) -> dict:
        user = self.get_user(user_id)
        return {
            "user": UserOut.model_validate(user),
            "companies": self._active_companies(user),
        }
