"""
User Service

User directory: lookups, creation, admin edits and soft-delete.
Uniqueness of username and email is enforced among non-deleted users.
"""
import logging
import re
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, and_, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError, NotFoundError
from app.core.security import get_password_hash
from app.core.utils import utcnow, as_utc
from app.models.user import User, UserRole, UserStatus

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{3,50}$")
USERNAME_RULE = "Username must be 3-50 characters long and contain only letters, numbers, and underscores"


def validate_username(username: str) -> str:
    if not username or not USERNAME_PATTERN.fullmatch(username):
        raise ValidationError(USERNAME_RULE, code="invalid_username")
    return username


class UserService:
    """
    Service for user management operations.

    Features:
    - User CRUD with soft-delete
    - Username/email uniqueness among live users
    - Admin status and password changes
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================================
    # Lookups
    # ============================================================

    async def get_user_by_id(
        self,
        user_id: int,
        include_deleted: bool = False,
    ) -> Optional[User]:
        """Get user by ID."""
        conditions = [User.id == user_id]

        if not include_deleted:
            conditions.append(User.deleted_at.is_(None))

        result = await self.db.execute(
            select(User).where(and_(*conditions))
        )
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get live user by email (case-insensitive)."""
        result = await self.db.execute(
            select(User).where(
                func.lower(User.email) == email.strip().lower(),
                User.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def get_user_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.username == username, User.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_user_by_login(self, identifier: str) -> Optional[User]:
        """Resolve a login name that may be a username or an email."""
        identifier = identifier.strip()
        if "@" in identifier:
            user = await self.get_user_by_email(identifier)
            if user:
                return user
        return await self.get_user_by_username(identifier)

    async def username_taken(self, username: str, exclude_id: Optional[int] = None) -> bool:
        conditions = [User.username == username, User.deleted_at.is_(None)]
        if exclude_id is not None:
            conditions.append(User.id != exclude_id)
        result = await self.db.execute(select(func.count(User.id)).where(and_(*conditions)))
        return (result.scalar() or 0) > 0

    async def email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        conditions = [func.lower(User.email) == email.strip().lower(), User.deleted_at.is_(None)]
        if exclude_id is not None:
            conditions.append(User.id != exclude_id)
        result = await self.db.execute(select(func.count(User.id)).where(and_(*conditions)))
        return (result.scalar() or 0) > 0

    async def list_users(
        self,
        keyword: Optional[str] = None,
        status: Optional[str] = None,
        role: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[User], int]:
        """
        List users with filtering and pagination, newest first.

        Returns:
            Tuple of (users, total_count)
        """
        conditions = [User.deleted_at.is_(None)]

        if keyword:
            pattern = f"%{keyword.lower()}%"
            conditions.append(
                or_(
                    func.lower(User.username).like(pattern),
                    func.lower(User.nickname).like(pattern),
                    func.lower(User.email).like(pattern),
                )
            )

        if status:
            conditions.append(User.status == status)

        if role:
            conditions.append(User.role == role)

        count_result = await self.db.execute(
            select(func.count(User.id)).where(and_(*conditions))
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(User)
            .where(and_(*conditions))
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    # ============================================================
    # Mutations
    # ============================================================

    async def create_user(
        self,
        username: str,
        email: str,
        hashed_password: str,
        role: str = UserRole.USER,
        status: str = UserStatus.ACTIVE,
        nickname: Optional[str] = None,
        join_ip: Optional[str] = None,
    ) -> User:
        """
        Insert a user. Callers check uniqueness first; a race that slips
        past those checks is caught by the partial unique indexes.
        """
        user = User(
            username=username,
            email=email.strip().lower(),
            nickname=nickname or username,
            hashed_password=hashed_password,
            role=role,
            status=status,
            failed_login_attempts=0,
            join_ip=join_ip,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError as e:
            logger.warning(f"Duplicate user insert for {username}/{email}: {e.orig}")
            raise ValidationError("Username or email already exists", code="duplicate_user") from e

        logger.info(f"Created user {user.id} ({username}, role={role})")
        return user

    async def update_user(self, user: User, fields: Dict[str, Any]) -> User:
        """Apply admin edits (email, nickname, role, status) with uniqueness checks."""
        email = fields.get("email")
        if email is not None:
            email = email.strip().lower()
            if await self.email_taken(email, exclude_id=user.id):
                raise ValidationError("Email already exists", code="duplicate_email")
            user.email = email

        if fields.get("nickname") is not None:
            user.nickname = fields["nickname"]
        if fields.get("role") is not None:
            user.role = fields["role"]
        if fields.get("status") is not None:
            user.status = fields["status"]

        user.updated_at = utcnow()
        await self.db.flush()
        return user

    async def set_status(self, user: User, status: str) -> User:
        user.status = status
        user.updated_at = utcnow()
        await self.db.flush()
        logger.info(f"User {user.id} status -> {status}")
        return user

    async def set_password(self, user: User, new_password: str) -> None:
        user.hashed_password = get_password_hash(new_password)
        user.updated_at = utcnow()
        await self.db.flush()

    async def soft_delete_user(self, user: User) -> None:
        user.deleted_at = utcnow()
        user.updated_at = user.deleted_at
        await self.db.flush()
        logger.info(f"User {user.id} soft-deleted")

    async def get_or_404(self, user_id: int) -> User:
        user = await self.get_user_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    # ============================================================
    # Display
    # ============================================================

    def format_user_for_display(self, user: User) -> Dict[str, Any]:
        locked_until = as_utc(user.locked_until)
        return {
            "id": user.id,
            "username": user.username,
            "nickname": user.nickname,
            "email": user.email,
            "role": user.role,
            "status": user.status,
            "failed_login_attempts": user.failed_login_attempts or 0,
            "locked_until": locked_until,
            "is_locked": locked_until is not None and locked_until > utcnow(),
            "last_login_at": as_utc(user.last_login_at),
            "last_login_ip": user.last_login_ip,
            "join_ip": user.join_ip,
            "created_at": as_utc(user.created_at),
            "updated_at": as_utc(user.updated_at),
        }
