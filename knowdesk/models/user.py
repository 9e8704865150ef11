"""Dashboard users: tenant staff who manage documents and take over handed-off conversations."""

import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean
from sqlalchemy import Enum as EnumType
from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowdesk.models.base import BaseModel
from knowdesk.models.tenant import Tenant


class UserRole(enum.Enum):
    ADMIN = "admin"
    AGENT = "agent"


class User(BaseModel):
    __tablename__ = "users"

    # Same id as the Supabase auth.users row; auth.users is outside our metadata.
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        comment="Corresponds to the id of the user in Supabase auth.users.",
    )
    role: Mapped[UserRole] = mapped_column(
        EnumType(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.AGENT,
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="users")

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role='{self.role.value}', tenant_id={self.tenant_id})>"
