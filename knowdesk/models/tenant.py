"""Tenant model."""

import re
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowdesk.models.base import BaseModel, JSONType

if TYPE_CHECKING:
    from knowdesk.models.user import User


class Tenant(BaseModel):
    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    plan: Mapped[str] = mapped_column(String(100), nullable=True, default="free")
    allowed_domains: Mapped[list[str]] = mapped_column(
        JSONType, nullable=True, default=list
    )
    token_balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Prepaid usage units. Only the usage ledger writes this column.",
    )
    llm_api_key: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Tenant-owned model provider key; the platform key is used when empty.",
    )

    users: Mapped[list["User"]] = relationship(
        "User", back_populates="tenant", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}')>"


def validate_allowed_domains(mapper, connection, target):
    """
    Validates and sanitizes the allowed_domains list.
    Strips whitespace and URL schemes, then checks against a domain regex.
    """
    if not target.allowed_domains:
        return

    cleaned_domains = []
    # Subdomains allowed, at least one dot, ends with 2+ letters
    domain_regex = re.compile(
        r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$"
    )

    for domain in target.allowed_domains:
        if not domain:
            continue

        s_domain = re.sub(r"^https?://", "", domain.strip())
        s_domain = s_domain.split("/")[0]

        if not domain_regex.match(s_domain):
            raise ValueError(f"Invalid domain format: '{domain}' (sanitized: '{s_domain}')")

        cleaned_domains.append(s_domain)

    target.allowed_domains = cleaned_domains


event.listen(Tenant, "before_insert", validate_allowed_domains)
event.listen(Tenant, "before_update", validate_allowed_domains)
