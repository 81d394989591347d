"""Data access & authorization rules for the job board.

Each operation receives the SQLAlchemy session and, where an actor is
involved, an explicit ``schemas.ActorSession``. Role and ownership checks run
here, before anything is written; the store only ever sees requests that
already passed them.
"""
import asyncio
from contextlib import contextmanager
from typing import Iterable, Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import models
import schemas
from errors import (
    AuthorizationError,
    CollaboratorError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

DECIDED_STATUSES = (models.ApplicationStatus.ACCEPTED, models.ApplicationStatus.REJECTED)


# --- Helpers ---
@contextmanager
def write_transaction(db: Session, conflict_message: Optional[str] = None):
    """Run the enclosed writes and commit, translating store failures.

    A unique-constraint violation becomes ``ConflictError`` when the caller
    names the conflict, any other store failure becomes ``CollaboratorError``.
    """
    try:
        yield
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if conflict_message:
            raise ConflictError(conflict_message) from exc
        raise CollaboratorError("Store rejected the write") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Commit failed", exc_info=exc)
        raise CollaboratorError("Store unavailable") from exc


def require_role(actor: schemas.ActorSession, role: models.Role) -> None:
    if actor.role != role:
        raise AuthorizationError(
            f"Only {role.value} accounts may perform this action",
            profile_id=actor.profile_id,
        )


def normalize_tags(values: Optional[Iterable[str]]) -> list[str]:
    """Trim entries, drop blanks and duplicates, keep first-seen order."""
    seen: list[str] = []
    for value in values or []:
        cleaned = value.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require_text(fields: dict, names: Iterable[str]) -> None:
    missing = [name for name in names if name in fields and _blank(fields[name])]
    if missing:
        raise ValidationError(f"Required field(s) cannot be blank: {', '.join(missing)}")


def _load_job(db: Session, job_id: str) -> models.Job:
    job = crud.get_job(db, job_id)
    if not job:
        raise NotFoundError("Job not found", job_id=job_id)
    return job


def _require_job_owner(job: models.Job, actor: schemas.ActorSession) -> None:
    if job.employer_id != actor.profile_id:
        logger.warning(
            "Ownership check failed", job_id=job.id, profile_id=actor.profile_id
        )
        raise AuthorizationError("You do not own this job", job_id=job.id)


# --- Profile ---
def get_profile(db: Session, actor: schemas.ActorSession) -> schemas.Profile:
    profile = crud.get_profile(db, actor.profile_id)
    if not profile:
        raise NotFoundError("Profile not found", profile_id=actor.profile_id)
    return schemas.Profile.model_validate(profile)


def update_profile(
    db: Session, actor: schemas.ActorSession, update: schemas.ProfileUpdate
) -> schemas.Profile:
    profile = crud.get_profile(db, actor.profile_id)
    if not profile:
        raise NotFoundError("Profile not found", profile_id=actor.profile_id)

    fields = update.model_dump(exclude_unset=True)
    patch: dict = {}
    if "full_name" in fields:
        _require_text(fields, ["full_name"])
        patch["full_name"] = fields["full_name"].strip()
    if "bio" in fields:
        patch["bio"] = _optional_text(fields["bio"])
    if "portfolio_url" in fields:
        patch["portfolio_url"] = _optional_text(fields["portfolio_url"])
    if "skills" in fields:
        patch["skills"] = normalize_tags(fields["skills"]) or None

    with write_transaction(db):
        crud.update_profile(db, profile, patch)
    db.refresh(profile)
    logger.info("Profile updated", profile_id=profile.id, fields=sorted(patch))
    return schemas.Profile.model_validate(profile)


# --- Company ---
def get_own_company(db: Session, actor: schemas.ActorSession) -> Optional[schemas.Company]:
    require_role(actor, models.Role.EMPLOYER)
    company = crud.get_company_for_user(db, actor.profile_id)
    return schemas.Company.model_validate(company) if company else None


def save_company(
    db: Session, actor: schemas.ActorSession, data: schemas.CompanyCreate
) -> schemas.Company:
    """Create the employer's company, or update it if one already exists."""
    require_role(actor, models.Role.EMPLOYER)
    if _blank(data.company_name):
        raise ValidationError("Company name is required")

    fields = {
        "company_name": data.company_name.strip(),
        "logo_url": _optional_text(data.logo_url),
        "website": _optional_text(data.website),
        "description": _optional_text(data.description),
    }
    company = crud.get_company_for_user(db, actor.profile_id)
    if company:
        with write_transaction(db):
            crud.update_company(db, company, fields)
        logger.info("Company updated", company_id=company.id)
    else:
        with write_transaction(db, conflict_message="This employer already has a company"):
            company = crud.create_company(db, actor.profile_id, fields)
        logger.info("Company created", company_id=company.id, profile_id=actor.profile_id)
    db.refresh(company)
    return schemas.Company.model_validate(company)


# --- Jobs ---
def list_open_jobs(
    db: Session, filters: Optional[schemas.JobFilters] = None
) -> list[schemas.JobWithCompany]:
    """Open jobs with their company, newest first. No authentication needed."""
    filters = filters or schemas.JobFilters()
    search = filters.search.strip() if filters.search else None
    jobs = crud.list_open_jobs(
        db,
        search=search or None,
        experience_level=filters.experience_level.value if filters.experience_level else None,
        employment_type=filters.employment_type.value if filters.employment_type else None,
    )
    if filters.tech_stack:
        jobs = [job for job in jobs if filters.tech_stack in (job.tech_stack or [])]
    return [schemas.JobWithCompany.model_validate(job) for job in jobs]


def get_job(db: Session, job_id: str) -> schemas.JobWithCompany:
    return schemas.JobWithCompany.model_validate(_load_job(db, job_id))


def create_job(
    db: Session,
    actor: schemas.ActorSession,
    data: schemas.JobCreate,
    company_id: Optional[str] = None,
) -> schemas.JobWithCompany:
    require_role(actor, models.Role.EMPLOYER)

    fields = data.model_dump(exclude={"company_id"})
    _require_text(fields, ["title", "description", "salary_range"])
    tech_stack = normalize_tags(fields["tech_stack"])
    if not tech_stack:
        raise ValidationError("Add at least one technology to the tech stack")

    company_id = company_id or data.company_id
    if company_id:
        company = crud.get_company(db, company_id)
        if not company or company.user_id != actor.profile_id:
            raise AuthorizationError("Company does not belong to this employer", company_id=company_id)
    else:
        company = crud.get_company_for_user(db, actor.profile_id)
        if not company:
            raise AuthorizationError("Create a company profile before posting jobs")

    with write_transaction(db):
        job = crud.create_job(
            db,
            employer_id=actor.profile_id,
            company_id=company.id,
            fields={
                "title": fields["title"].strip(),
                "description": fields["description"].strip(),
                "tech_stack": tech_stack,
                "experience_level": data.experience_level.value,
                "salary_range": fields["salary_range"].strip(),
                "employment_type": data.employment_type.value,
                "timezone": _optional_text(fields.get("timezone")),
            },
        )
    logger.info("Job created", job_id=job.id, employer_id=actor.profile_id)
    return schemas.JobWithCompany.model_validate(_load_job(db, job.id))


def update_job(
    db: Session, job_id: str, actor: schemas.ActorSession, update: schemas.JobUpdate
) -> schemas.JobWithCompany:
    job = _load_job(db, job_id)
    _require_job_owner(job, actor)

    fields = update.model_dump(exclude_unset=True)
    # Explicit nulls are not allowed for required columns
    _require_text(fields, ["title", "description", "salary_range"])
    for required in ("experience_level", "employment_type", "status"):
        if required in fields and fields[required] is None:
            raise ValidationError(f"{required} cannot be empty")

    patch: dict = {}
    for name in ("title", "description", "salary_range"):
        if name in fields:
            patch[name] = fields[name].strip()
    for name in ("experience_level", "employment_type", "status"):
        if name in fields:
            patch[name] = fields[name].value
    if "timezone" in fields:
        patch["timezone"] = _optional_text(fields["timezone"])
    if "tech_stack" in fields:
        tech_stack = normalize_tags(fields["tech_stack"])
        if not tech_stack:
            raise ValidationError("Add at least one technology to the tech stack")
        patch["tech_stack"] = tech_stack

    with write_transaction(db):
        crud.update_job(db, job, patch)
    logger.info("Job updated", job_id=job.id, fields=sorted(patch))
    return schemas.JobWithCompany.model_validate(_load_job(db, job.id))


def delete_job(db: Session, job_id: str, actor: schemas.ActorSession) -> None:
    job = _load_job(db, job_id)
    _require_job_owner(job, actor)
    with write_transaction(db):
        crud.delete_job(db, job)
    logger.info("Job deleted", job_id=job_id, employer_id=actor.profile_id)


def list_employer_jobs(db: Session, actor: schemas.ActorSession) -> schemas.EmployerDashboard:
    require_role(actor, models.Role.EMPLOYER)
    rows = crud.get_jobs_with_application_counts(db, actor.profile_id)
    jobs = [
        schemas.EmployerJob.model_validate(job).model_copy(update={"application_count": count})
        for job, count in rows
    ]
    stats = schemas.EmployerStats(
        total_jobs=len(jobs),
        open_jobs=sum(1 for job in jobs if job.status == models.JobStatus.OPEN),
        total_applications=sum(job.application_count for job in jobs),
    )
    return schemas.EmployerDashboard(jobs=jobs, stats=stats)


# --- Applications ---
def apply_to_job(
    db: Session,
    job_id: str,
    actor: schemas.ActorSession,
    resume_url: str,
    cover_letter: Optional[str] = None,
) -> schemas.Application:
    require_role(actor, models.Role.DEVELOPER)
    if _blank(resume_url):
        raise ValidationError("A resume URL is required to apply")

    job = _load_job(db, job_id)
    if job.status != models.JobStatus.OPEN.value:
        raise InvalidStateError("This job is no longer accepting applications", job_id=job_id)
    if crud.get_application_for(db, job_id, actor.profile_id):
        raise ConflictError("You have already applied to this job", job_id=job_id)

    with write_transaction(db, conflict_message="You have already applied to this job"):
        application = crud.create_application(
            db,
            job_id=job_id,
            developer_id=actor.profile_id,
            resume_url=resume_url.strip(),
            cover_letter=_optional_text(cover_letter),
        )
    db.refresh(application)
    logger.info("Application submitted", application_id=application.id, job_id=job_id)
    return schemas.Application.model_validate(application)


def has_applied(db: Session, job_id: str, actor: schemas.ActorSession) -> bool:
    if not actor.is_developer:
        return False
    return crud.get_application_for(db, job_id, actor.profile_id) is not None


def list_applications_for_job(
    db: Session, job_id: str, actor: schemas.ActorSession
) -> list[schemas.ApplicationWithDetails]:
    job = _load_job(db, job_id)
    _require_job_owner(job, actor)
    applications = crud.list_applications_for_job(db, job_id)
    return [schemas.ApplicationWithDetails.model_validate(app) for app in applications]


def set_application_status(
    db: Session,
    application_id: str,
    actor: schemas.ActorSession,
    status: models.ApplicationStatus,
) -> schemas.Application:
    """Decide a pending application.

    Pending -> Accepted and Pending -> Rejected are the only transitions.
    Repeating the decision already recorded is a no-op; changing it raises
    ``InvalidStateError``.
    """
    status = models.ApplicationStatus(status)
    if status not in DECIDED_STATUSES:
        raise ValidationError("Status must be Accepted or Rejected")

    application = crud.get_application(db, application_id)
    if not application:
        raise NotFoundError("Application not found", application_id=application_id)
    _require_job_owner(application.job, actor)

    current = models.ApplicationStatus(application.status)
    if current == status:
        return schemas.Application.model_validate(application)
    if current != models.ApplicationStatus.PENDING:
        raise InvalidStateError(
            f"Application already {current.value.lower()}",
            application_id=application_id,
        )

    with write_transaction(db):
        crud.update_application_status(db, application, status.value)
    db.refresh(application)
    logger.info(
        "Application status changed",
        application_id=application_id,
        status=status.value,
    )
    return schemas.Application.model_validate(application)


# --- Bookmarks ---
def toggle_bookmark(db: Session, job_id: str, actor: schemas.ActorSession) -> bool:
    """Flip the bookmark for (job, developer); returns the new state."""
    require_role(actor, models.Role.DEVELOPER)
    _load_job(db, job_id)

    bookmark = crud.get_bookmark(db, job_id, actor.profile_id)
    if bookmark:
        with write_transaction(db):
            crud.delete_bookmark(db, bookmark)
        logger.info("Bookmark removed", job_id=job_id, developer_id=actor.profile_id)
        return False

    with write_transaction(db, conflict_message="Job is already bookmarked"):
        crud.create_bookmark(db, job_id, actor.profile_id)
    logger.info("Bookmark added", job_id=job_id, developer_id=actor.profile_id)
    return True


def list_bookmarked_job_ids(db: Session, actor: schemas.ActorSession) -> list[str]:
    if not actor.is_developer:
        return []
    return crud.list_bookmarked_job_ids(db, actor.profile_id)


# --- Developer dashboard ---
def _applications_with_jobs(db: Session, developer_id: str) -> list[schemas.ApplicationWithJob]:
    return [
        schemas.ApplicationWithJob.model_validate(app)
        for app in crud.list_applications_for_developer(db, developer_id)
    ]


def _bookmarks_with_jobs(db: Session, developer_id: str) -> list[schemas.BookmarkWithJob]:
    return [
        schemas.BookmarkWithJob.model_validate(bookmark)
        for bookmark in crud.list_bookmarks_for_developer(db, developer_id)
    ]


async def list_dashboard_data(
    db: Session, actor: schemas.ActorSession
) -> schemas.DeveloperDashboard:
    """Fetch the developer's applications and bookmarks concurrently.

    Each read runs in the default executor on its own session bound to the
    same engine; rows are converted to schemas before that session closes.
    """
    require_role(actor, models.Role.DEVELOPER)
    bind = db.get_bind()
    loop = asyncio.get_running_loop()

    def _read(fetch):
        with Session(bind=bind) as read_db:
            try:
                return fetch(read_db, actor.profile_id)
            except SQLAlchemyError as exc:
                raise CollaboratorError("Store unavailable") from exc

    applications, bookmarks = await asyncio.gather(
        loop.run_in_executor(None, _read, _applications_with_jobs),
        loop.run_in_executor(None, _read, _bookmarks_with_jobs),
    )
    stats = schemas.DeveloperStats(
        total_applications=len(applications),
        pending=sum(1 for app in applications if app.status == models.ApplicationStatus.PENDING),
        accepted=sum(1 for app in applications if app.status == models.ApplicationStatus.ACCEPTED),
        bookmarks=len(bookmarks),
    )
    return schemas.DeveloperDashboard(applications=applications, bookmarks=bookmarks, stats=stats)
