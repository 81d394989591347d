from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

import models


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# --- Account / Identity CRUD ---
def get_account_by_email(db: Session, email: str):
    return db.query(models.Account).filter(models.Account.email == email).first()


def create_account(db: Session, email: str, password_hash: str):
    db_account = models.Account(email=email, password_hash=password_hash)
    db.add(db_account)
    db.flush()  # Assign ID without committing
    return db_account


def is_token_revoked(db: Session, jti: str) -> bool:
    return db.get(models.RevokedToken, jti) is not None


def revoke_token(db: Session, jti: str, expires_at: datetime):
    if is_token_revoked(db, jti):
        return
    db.add(models.RevokedToken(jti=jti, expires_at=expires_at))
    db.flush()


def purge_revoked_tokens(db: Session, now: datetime) -> int:
    """Drop revocation entries for tokens that have expired anyway."""
    return (
        db.query(models.RevokedToken)
        .filter(models.RevokedToken.expires_at < now)
        .delete(synchronize_session=False)
    )


# --- Profile CRUD ---
def get_profile(db: Session, profile_id: str):
    return db.get(models.Profile, profile_id)


def create_profile(db: Session, account_id: str, email: str, full_name: str, role: models.Role):
    db_profile = models.Profile(
        id=account_id,
        email=email,
        full_name=full_name,
        role=role.value,
    )
    db.add(db_profile)
    db.flush()
    return db_profile


def update_profile(db: Session, profile: models.Profile, patch: dict):
    for field, value in patch.items():
        setattr(profile, field, value)
    db.add(profile)  # add works for updates too
    db.flush()
    return profile


# --- Company CRUD ---
def get_company(db: Session, company_id: str):
    return db.get(models.Company, company_id)


def get_company_for_user(db: Session, user_id: str):
    return db.query(models.Company).filter(models.Company.user_id == user_id).first()


def create_company(db: Session, user_id: str, fields: dict):
    db_company = models.Company(user_id=user_id, **fields)
    db.add(db_company)
    db.flush()
    return db_company


def update_company(db: Session, company: models.Company, fields: dict):
    for field, value in fields.items():
        setattr(company, field, value)
    db.add(company)
    db.flush()
    return company


# --- Job CRUD ---
def list_open_jobs(
    db: Session,
    search: Optional[str] = None,
    experience_level: Optional[str] = None,
    employment_type: Optional[str] = None,
):
    """Open jobs joined with their company, newest first.

    Tech-stack membership is left to the caller since JSON containment is not
    portable between SQLite and PostgreSQL.
    """
    query = (
        db.query(models.Job)
        .join(models.Company, models.Job.company_id == models.Company.id)
        .options(joinedload(models.Job.company))
        .filter(models.Job.status == models.JobStatus.OPEN.value)
    )
    if search:
        pattern = _like_pattern(search)
        query = query.filter(
            or_(
                models.Job.title.ilike(pattern, escape="\\"),
                models.Company.company_name.ilike(pattern, escape="\\"),
                models.Job.description.ilike(pattern, escape="\\"),
            )
        )
    if experience_level:
        query = query.filter(models.Job.experience_level == experience_level)
    if employment_type:
        query = query.filter(models.Job.employment_type == employment_type)
    return query.order_by(models.Job.created_at.desc()).all()


def get_job(db: Session, job_id: str):
    return (
        db.query(models.Job)
        .options(joinedload(models.Job.company))
        .filter(models.Job.id == job_id)
        .first()
    )


def create_job(db: Session, employer_id: str, company_id: str, fields: dict):
    db_job = models.Job(
        employer_id=employer_id,
        company_id=company_id,
        status=models.JobStatus.OPEN.value,
        **fields,
    )
    db.add(db_job)
    db.flush()
    return db_job


def update_job(db: Session, job: models.Job, patch: dict):
    for field, value in patch.items():
        setattr(job, field, value)
    db.add(job)
    db.flush()
    return job


def delete_job(db: Session, job: models.Job):
    db.delete(job)
    db.flush()


def get_jobs_with_application_counts(db: Session, employer_id: str):
    """Employer's jobs newest first, each paired with its application count."""
    counts = (
        db.query(
            models.Application.job_id.label("job_id"),
            func.count(models.Application.id).label("application_count"),
        )
        .group_by(models.Application.job_id)
        .subquery()
    )
    rows = (
        db.query(models.Job, func.coalesce(counts.c.application_count, 0))
        .outerjoin(counts, counts.c.job_id == models.Job.id)
        .filter(models.Job.employer_id == employer_id)
        .order_by(models.Job.created_at.desc())
        .all()
    )
    return [(job, int(count)) for job, count in rows]


# --- Application CRUD ---
def get_application(db: Session, application_id: str):
    return (
        db.query(models.Application)
        .options(joinedload(models.Application.job))
        .filter(models.Application.id == application_id)
        .first()
    )


def get_application_for(db: Session, job_id: str, developer_id: str):
    return (
        db.query(models.Application)
        .filter(
            models.Application.job_id == job_id,
            models.Application.developer_id == developer_id,
        )
        .first()
    )


def create_application(
    db: Session, job_id: str, developer_id: str, resume_url: str, cover_letter: Optional[str]
):
    db_application = models.Application(
        job_id=job_id,
        developer_id=developer_id,
        resume_url=resume_url,
        cover_letter=cover_letter,
        status=models.ApplicationStatus.PENDING.value,
    )
    db.add(db_application)
    db.flush()
    return db_application


def list_applications_for_job(db: Session, job_id: str):
    return (
        db.query(models.Application)
        .options(
            joinedload(models.Application.developer),
            joinedload(models.Application.job).joinedload(models.Job.company),
        )
        .filter(models.Application.job_id == job_id)
        .order_by(models.Application.created_at.desc())
        .all()
    )


def list_applications_for_developer(db: Session, developer_id: str):
    return (
        db.query(models.Application)
        .options(joinedload(models.Application.job).joinedload(models.Job.company))
        .filter(models.Application.developer_id == developer_id)
        .order_by(models.Application.created_at.desc())
        .all()
    )


def update_application_status(db: Session, application: models.Application, status: str):
    application.status = status
    db.add(application)
    db.flush()
    return application


# --- Bookmark CRUD ---
def get_bookmark(db: Session, job_id: str, developer_id: str):
    return (
        db.query(models.Bookmark)
        .filter(
            models.Bookmark.job_id == job_id,
            models.Bookmark.developer_id == developer_id,
        )
        .first()
    )


def create_bookmark(db: Session, job_id: str, developer_id: str):
    db_bookmark = models.Bookmark(job_id=job_id, developer_id=developer_id)
    db.add(db_bookmark)
    db.flush()
    return db_bookmark


def delete_bookmark(db: Session, bookmark: models.Bookmark):
    db.delete(bookmark)
    db.flush()


def list_bookmarks_for_developer(db: Session, developer_id: str):
    return (
        db.query(models.Bookmark)
        .options(joinedload(models.Bookmark.job).joinedload(models.Job.company))
        .filter(models.Bookmark.developer_id == developer_id)
        .order_by(models.Bookmark.created_at.desc())
        .all()
    )


def list_bookmarked_job_ids(db: Session, developer_id: str) -> list[str]:
    rows = (
        db.query(models.Bookmark.job_id)
        .filter(models.Bookmark.developer_id == developer_id)
        .all()
    )
    return [row.job_id for row in rows]
