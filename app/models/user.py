from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base


class User(Base):
    """
    Back-office account.

    Only admins and superusers reach the newsletter endpoints; other staff
    accounts can log in but get 403 there.
    """

    __tablename__ = "api_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))

    is_active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_superuser = Column(Boolean, default=False)

    last_login_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def can_manage_newsletter(self) -> bool:
        return bool(self.is_admin or self.is_superuser)

    def __repr__(self):
        return f"<User {self.email} admin={self.can_manage_newsletter}>"
