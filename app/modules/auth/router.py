from fastapi import APIRouter, Depends, status

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.guards import require_access
from app.modules.auth.schemas import AuthContext, MeResponse, TokenResponse, UserCreate, UserLogin, UserOut
from app.modules.auth.service import AuthService

auth_router = APIRouter()


@auth_router.post(
    "/register",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access("auth.register"))],
)
def register(user_data: UserCreate, db: db_dependency):
    """
    Registrar nuevo usuario. El rol global por defecto es USER.
    """
    return AuthService(db).create_user(user_data)


@auth_router.post(
    "/login",
    response_model=TokenResponse,
    dependencies=[Depends(require_access("auth.login"))],
)
def login(credentials: UserLogin, db: db_dependency):
    """
    Login de usuario. Retorna token de acceso y lista de empresas.
    """
    return AuthService(db).login(credentials.email, credentials.password)


@auth_router.get("/me", response_model=MeResponse)
def get_current_user_info(
    db: db_dependency,
    auth: AuthContext = Depends(require_access("auth.me")),
):
    """
    Obtener información del usuario actual.
    """
    return AuthService(db).me(auth.user_id)
