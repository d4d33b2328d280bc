"""
User model. Accounts are created by the registration/admin surface; the
booking core only reads `id` and `role`.
"""

from sqlalchemy import Column, Integer, String, CheckConstraint

from app.core.roles import Role
from app.db.base import Base, TimestampMixin

_ROLE_VALUES = ", ".join(f"'{r.value}'" for r in Role)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=Role.COMMUTER.value)

    __table_args__ = (
        CheckConstraint(f"role IN ({_ROLE_VALUES})", name="check_user_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
