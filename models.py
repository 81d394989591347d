import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import relationship
from sqlalchemy import Column, String, ForeignKey, Text, DateTime, JSON, UniqueConstraint
from database import Base


class Role(str, enum.Enum):
    DEVELOPER = "developer"
    EMPLOYER = "employer"


class ExperienceLevel(str, enum.Enum):
    JUNIOR = "Junior"
    MID = "Mid"
    SENIOR = "Senior"


class EmploymentType(str, enum.Enum):
    FULL_TIME = "Full-time"
    CONTRACT = "Contract"
    INTERNSHIP = "Internship"


class JobStatus(str, enum.Enum):
    OPEN = "Open"
    CLOSED = "Closed"


class ApplicationStatus(str, enum.Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Identity tables ---
class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    profile = relationship("Profile", back_populates="account", uselist=False)


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    jti = Column(String(64), primary_key=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)


# --- Job board tables ---
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String, nullable=False, index=True)
    full_name = Column(String, nullable=False)
    role = Column(String(16), nullable=False)  # Role value, immutable
    bio = Column(Text, nullable=True)
    skills = Column(JSON, nullable=True)
    portfolio_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    account = relationship("Account", back_populates="profile")
    company = relationship("Company", back_populates="owner", uselist=False)


class Company(Base):
    __tablename__ = "companies"
    __table_args__ = (UniqueConstraint("user_id", name="uq_company_user"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    company_name = Column(String, nullable=False)
    logo_url = Column(String, nullable=True)
    website = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    owner = relationship("Profile", back_populates="company")
    jobs = relationship("Job", back_populates="company")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    employer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    tech_stack = Column(JSON, nullable=False)
    experience_level = Column(String(16), nullable=False)
    salary_range = Column(String, nullable=False)
    employment_type = Column(String(16), nullable=False)
    timezone = Column(String, nullable=True)
    status = Column(String(16), nullable=False, default=JobStatus.OPEN.value, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    company = relationship("Company", back_populates="jobs")
    employer = relationship("Profile", foreign_keys=[employer_id])
    applications = relationship(
        "Application", back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )
    bookmarks = relationship(
        "Bookmark", back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("job_id", "developer_id", name="uq_application_job_developer"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    developer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    resume_url = Column(String, nullable=False)
    cover_letter = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default=ApplicationStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    job = relationship("Job", back_populates="applications")
    developer = relationship("Profile", foreign_keys=[developer_id])


class Bookmark(Base):
    __tablename__ = "bookmarks"
    __table_args__ = (
        UniqueConstraint("job_id", "developer_id", name="uq_bookmark_job_developer"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    developer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    job = relationship("Job", back_populates="bookmarks")
    developer = relationship("Profile", foreign_keys=[developer_id])
