import uuid

import pytest
from sqlalchemy.orm import Session

import crud
import logic
import models
import schemas
from conftest import job_payload, sign_up_actor
from errors import AuthorizationError, NotFoundError, ValidationError


def _open_job_ids(db: Session, **filters) -> list[str]:
    return [job.id for job in logic.list_open_jobs(db, schemas.JobFilters(**filters))]


def test_create_job_defaults_to_open_and_is_listed(db_session: Session, employer, company):
    """A new job starts Open, carries its company and shows up in the open listing."""
    job = logic.create_job(db_session, employer, job_payload(tech_stack=["Go"]))

    assert job.status == models.JobStatus.OPEN
    assert job.employer_id == employer.profile_id
    assert job.company.id == company.id
    assert job.tech_stack == ["Go"]
    assert job.id in _open_job_ids(db_session)


def test_create_job_with_empty_tech_stack_fails_without_insert(db_session: Session, employer, company):
    """An empty tech stack is rejected and nothing is written."""
    before = len(crud.get_jobs_with_application_counts(db_session, employer.profile_id))

    with pytest.raises(ValidationError):
        logic.create_job(db_session, employer, job_payload(tech_stack=[]))
    with pytest.raises(ValidationError):
        logic.create_job(db_session, employer, job_payload(tech_stack=["  ", ""]))

    after = len(crud.get_jobs_with_application_counts(db_session, employer.profile_id))
    assert after == before


@pytest.mark.parametrize("field", ["title", "description", "salary_range"])
def test_create_job_rejects_blank_required_fields(db_session: Session, employer, company, field):
    with pytest.raises(ValidationError):
        logic.create_job(db_session, employer, job_payload(**{field: "   "}))


def test_create_job_normalizes_tech_stack(db_session: Session, employer, company):
    job = logic.create_job(
        db_session, employer, job_payload(tech_stack=[" Python ", "Go", "Python", ""])
    )
    assert job.tech_stack == ["Python", "Go"]


def test_create_job_requires_a_company(db_session: Session):
    """An employer without a company profile cannot post."""
    employer = sign_up_actor(db_session, models.Role.EMPLOYER, "nocompany")

    with pytest.raises(AuthorizationError):
        logic.create_job(db_session, employer, job_payload())


def test_create_job_rejects_another_employers_company(db_session: Session, employer, company, other_employer):
    logic.save_company(db_session, other_employer, schemas.CompanyCreate(company_name="Rival Inc"))

    with pytest.raises(AuthorizationError):
        logic.create_job(db_session, other_employer, job_payload(company_id=company.id))


def test_developer_cannot_create_job(db_session: Session, developer):
    with pytest.raises(AuthorizationError):
        logic.create_job(db_session, developer, job_payload())


def test_get_job_returns_company_and_unknown_job_is_not_found(db_session: Session, open_job):
    job = logic.get_job(db_session, open_job.id)
    assert job.title == open_job.title
    assert job.company.company_name == open_job.company.company_name

    with pytest.raises(NotFoundError):
        logic.get_job(db_session, str(uuid.uuid4()))


def test_closing_job_removes_it_from_listing_and_reopening_restores_it(db_session: Session, employer, open_job):
    closed = logic.update_job(
        db_session, open_job.id, employer, schemas.JobUpdate(status=models.JobStatus.CLOSED)
    )
    assert closed.status == models.JobStatus.CLOSED
    assert open_job.id not in _open_job_ids(db_session)

    # Closed jobs stay reachable by id
    assert logic.get_job(db_session, open_job.id).status == models.JobStatus.CLOSED

    logic.update_job(db_session, open_job.id, employer, schemas.JobUpdate(status=models.JobStatus.OPEN))
    assert open_job.id in _open_job_ids(db_session)


def test_update_job_by_non_owner_is_rejected_and_record_unchanged(db_session: Session, open_job, other_employer):
    with pytest.raises(AuthorizationError):
        logic.update_job(db_session, open_job.id, other_employer, schemas.JobUpdate(title="Hijacked"))

    db_session.expire_all()
    assert logic.get_job(db_session, open_job.id).title == open_job.title


def test_update_job_applies_partial_changes(db_session: Session, employer, open_job):
    updated = logic.update_job(
        db_session,
        open_job.id,
        employer,
        schemas.JobUpdate(title="Staff Engineer", tech_stack=["Rust", " rust ", "Go"], timezone=""),
    )
    assert updated.title == "Staff Engineer"
    assert updated.tech_stack == ["Rust", "rust", "Go"]
    assert updated.timezone is None
    assert updated.description == open_job.description


def test_update_job_rejects_empty_tech_stack(db_session: Session, employer, open_job):
    with pytest.raises(ValidationError):
        logic.update_job(db_session, open_job.id, employer, schemas.JobUpdate(tech_stack=[]))

    db_session.expire_all()
    assert logic.get_job(db_session, open_job.id).tech_stack == open_job.tech_stack


def test_update_unknown_job_is_not_found(db_session: Session, employer):
    with pytest.raises(NotFoundError):
        logic.update_job(db_session, str(uuid.uuid4()), employer, schemas.JobUpdate(title="x"))


def test_delete_job_only_by_owner(db_session: Session, employer, other_employer, open_job):
    with pytest.raises(AuthorizationError):
        logic.delete_job(db_session, open_job.id, other_employer)
    assert logic.get_job(db_session, open_job.id)

    logic.delete_job(db_session, open_job.id, employer)
    with pytest.raises(NotFoundError):
        logic.get_job(db_session, open_job.id)


def test_delete_job_removes_its_applications_and_bookmarks(db_session: Session, employer, developer, open_job):
    application = logic.apply_to_job(db_session, open_job.id, developer, "https://x/r.pdf")
    logic.toggle_bookmark(db_session, open_job.id, developer)

    logic.delete_job(db_session, open_job.id, employer)

    db_session.expire_all()
    assert crud.get_application(db_session, application.id) is None
    assert crud.get_bookmark(db_session, open_job.id, developer.profile_id) is None


def test_list_open_jobs_filters(db_session: Session, employer, company):
    """Search is a case-insensitive substring match; other filters are exact."""
    marker = uuid.uuid4().hex[:8]
    senior = logic.create_job(
        db_session,
        employer,
        job_payload(
            title=f"Senior Platform {marker}",
            tech_stack=["Kubernetes", "Go"],
            experience_level=models.ExperienceLevel.SENIOR,
            employment_type=models.EmploymentType.CONTRACT,
        ),
    )
    junior = logic.create_job(
        db_session,
        employer,
        job_payload(
            title="Junior Frontend",
            description=f"React work, ref {marker.upper()}",
            tech_stack=["React"],
            experience_level=models.ExperienceLevel.JUNIOR,
            employment_type=models.EmploymentType.INTERNSHIP,
        ),
    )

    assert set(_open_job_ids(db_session, search=marker)) == {senior.id, junior.id}
    assert _open_job_ids(db_session, search=marker, experience_level=models.ExperienceLevel.SENIOR) == [senior.id]
    assert _open_job_ids(db_session, search=marker, employment_type=models.EmploymentType.INTERNSHIP) == [junior.id]
    assert _open_job_ids(db_session, search=marker, tech_stack="React") == [junior.id]
    assert _open_job_ids(db_session, search=marker, tech_stack="COBOL") == []


def test_list_open_jobs_searches_company_name_and_orders_newest_first(db_session: Session):
    employer = sign_up_actor(db_session, models.Role.EMPLOYER, "searcher")
    name = f"Zebra Labs {uuid.uuid4().hex[:6]}"
    logic.save_company(db_session, employer, schemas.CompanyCreate(company_name=name))
    first = logic.create_job(db_session, employer, job_payload(title="First"))
    second = logic.create_job(db_session, employer, job_payload(title="Second"))

    assert _open_job_ids(db_session, search=name.lower()) == [second.id, first.id]


def test_list_open_jobs_search_folds_non_ascii_case(db_session: Session, employer, company):
    marker = uuid.uuid4().hex[:8]
    job = logic.create_job(db_session, employer, job_payload(title=f"Zürich Backend {marker}"))

    assert _open_job_ids(db_session, search=f"ZÜRICH BACKEND {marker}") == [job.id]
    assert _open_job_ids(db_session, search=f"zürich backend {marker.upper()}") == [job.id]


def test_list_open_jobs_treats_wildcards_literally(db_session: Session, employer, company):
    logic.create_job(db_session, employer, job_payload(title="Plain title"))
    assert _open_job_ids(db_session, search="%_%_%_%_%_%_%_%") == []


def test_employer_dashboard_counts_applications(db_session: Session, employer, company):
    busy = logic.create_job(db_session, employer, job_payload(title="Busy"))
    quiet = logic.create_job(db_session, employer, job_payload(title="Quiet"))
    logic.update_job(db_session, quiet.id, employer, schemas.JobUpdate(status=models.JobStatus.CLOSED))
    for prefix in ("dev-a", "dev-b"):
        dev = sign_up_actor(db_session, models.Role.DEVELOPER, prefix)
        logic.apply_to_job(db_session, busy.id, dev, "https://x/r.pdf")

    dashboard = logic.list_employer_jobs(db_session, employer)

    assert [job.id for job in dashboard.jobs] == [quiet.id, busy.id]
    counts = {job.id: job.application_count for job in dashboard.jobs}
    assert counts == {busy.id: 2, quiet.id: 0}
    assert dashboard.stats == schemas.EmployerStats(total_jobs=2, open_jobs=1, total_applications=2)


def test_developer_cannot_list_employer_jobs(db_session: Session, developer):
    with pytest.raises(AuthorizationError):
        logic.list_employer_jobs(db_session, developer)
