# File: taskhub/repositories/user_repository.py

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskhub.db.models import User
from taskhub.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for user references."""

    model = User

    def __init__(self, session: Session):
        super().__init__(session, User)

    def get_for_tenant(self, tenant_id: str, user_id: int) -> Optional[User]:
        stmt = select(User).where(
            User.id == user_id, User.tenant_id == tenant_id, User.is_active.is_(True)
        )
        return self.session.execute(stmt).scalar_one_or_none()
