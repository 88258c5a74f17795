"""Local system-of-record models: users, applications and their access grants."""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    OFFBOARDING = "offboarding"


class User(SQLModel, table=True):
    """A person known to the organisation, keyed by email."""

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    okta_id: Optional[str] = Field(default=None, index=True)
    name: str
    department: str = "Unknown"
    title: Optional[str] = None
    manager: Optional[str] = None
    status: str = UserStatus.ACTIVE.value
    last_active: Optional[datetime] = None
    start_date: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    access: List["UserAppAccess"] = Relationship(back_populates="user")


class Application(SQLModel, table=True):
    """A SaaS application, keyed by (name, source)."""

    __table_args__ = (UniqueConstraint("name", "source", name="uq_application_name_source"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    source: str = "manual"  # "okta", "manual", ...
    okta_app_id: Optional[str] = Field(default=None, index=True)
    vendor: Optional[str] = None
    category: str = "Other"
    status: str = "sanctioned"
    sso_connected: bool = False
    last_activity: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    access: List["UserAppAccess"] = Relationship(back_populates="application")


class UserAppAccess(SQLModel, table=True):
    """One access grant of a user to an application."""

    __table_args__ = (UniqueConstraint("user_id", "application_id", name="uq_access_user_application"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    application_id: int = Field(foreign_key="application.id", index=True)
    access_level: str = "user"
    status: str = "active"  # "active", "inactive"
    last_login: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    user: Optional[User] = Relationship(back_populates="access")
    application: Optional[Application] = Relationship(back_populates="access")
