"""
API dependencies

Everything here reads the per-application objects create_app() placed on
app.state, so tests can build isolated apps side by side.
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.database import get_db
from app.core.exceptions import InvalidTokenError
from app.core.security import TOKEN_TYPE_ACCESS, TokenIssuer
from app.models.user import User, UserStatus
from app.services.auth_email_service import AuthEmailService
from app.services.auth_service import AuthService
from app.services.code_cleanup import CleanupStatus
from app.services.user_service import UserService

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cleanup_status(request: Request) -> CleanupStatus:
    return request.app.state.cleanup_status


def get_auth_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthService:
    state = request.app.state
    mailer = AuthEmailService(
        db=db,
        settings=state.settings,
        provider=state.mail_provider,
        tasks=state.tasks,
        database=state.database,
    )
    return AuthService(db=db, settings=state.settings, mailer=mailer, captcha=state.captcha)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user (access tokens only)"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    settings: Settings = request.app.state.settings
    issuer = TokenIssuer(settings.SECRET_KEY, settings.ALGORITHM)
    try:
        claims = issuer.parse_token(credentials.credentials)
    except InvalidTokenError:
        claims = None

    if claims is None or claims.token_type != TOKEN_TYPE_ACCESS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await UserService(db).get_user_by_id(claims.account_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if user.status != UserStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive"
        )

    # Read by the operation log middleware
    request.state.user_id = user.id
    request.state.username = user.username
    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    """Require admin user"""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
