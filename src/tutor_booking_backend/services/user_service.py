'''

'''
from typing import Annotated
from uuid import UUID
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import UserRole
from ..common.exceptions import NotFoundError
from ..common.logger import log


class UserService:
    """
    Read-only access to the users the identity collaborator maintains.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_user_by_email(self, email: str) -> db_models.Users | None:
        log.info(f"Fetching user profile for email: {email}")
        try:
            stmt = select(db_models.Users).filter(db_models.Users.email == email)
            result = await self.db.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            log.error(f"Database error fetching user by email {email}: {e}", exc_info=True)
            raise

    async def get_user_by_id(self, user_id: UUID) -> db_models.Users | None:
        log.info(f"Fetching user profile for ID: {user_id}")
        try:
            return await self.db.get(db_models.Users, user_id)
        except Exception as e:
            log.error(f"Database error fetching user by ID {user_id}: {e}", exc_info=True)
            raise

    async def get_user_with_role(self, user_id: UUID, role: UserRole) -> db_models.Users:
        """
        Fetches an active user and checks their role.
        Raises NotFoundError if the user is missing, inactive or has another role.
        """
        user = await self.get_user_by_id(user_id)
        if user is None or not user.is_active or user.role != role.value:
            log.warning(f"No active {role.value} found with ID {user_id}.")
            raise NotFoundError(f"{role.value.capitalize()} {user_id} not found.")
        return user


def authorize_roles(current_user: db_models.Users, allowed_roles: list[UserRole]):
    """Helper to check general role permissions."""
    allowed_role_values = [role.value for role in allowed_roles]
    if current_user.role not in allowed_role_values:
        log.warning(f"Unauthorized action by user {current_user.id} (Role: {current_user.role}). Required one of: {allowed_role_values}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action."
        )
