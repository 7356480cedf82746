# File: taskhub/db/models/user.py

from sqlalchemy import Boolean, Column, Integer, String

from taskhub.db.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """
    Lightweight user reference used for task assignment and ownership.

    Credentials and sessions live in the identity service; only the fields the
    task engine needs to resolve assignees and visibility are kept here.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    email = Column(String(255), index=True, nullable=False)
    username = Column(String(100), index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    is_superuser = Column(Boolean, default=False)

    def __repr__(self):
        return f"User(id={self.id}, tenant={self.tenant_id}, username={self.username})"
