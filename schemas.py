from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import (
    ApplicationStatus,
    EmploymentType,
    ExperienceLevel,
    JobStatus,
    Role,
)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Identity ---
class SignUpRequest(BaseModel):
    email: str
    password: str
    full_name: str
    role: Optional[Role] = None


class SignInRequest(BaseModel):
    email: str
    password: str


class AuthToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    profile_id: str
    role: Role


class ActorSession(BaseModel):
    """The authenticated identity passed explicitly into every rule call."""

    model_config = ConfigDict(frozen=True)

    profile_id: str
    email: str
    role: Role
    token_id: Optional[str] = None

    @property
    def is_developer(self) -> bool:
        return self.role == Role.DEVELOPER

    @property
    def is_employer(self) -> bool:
        return self.role == Role.EMPLOYER


# --- Profile ---
class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    bio: Optional[str] = None
    skills: Optional[List[str]] = None
    portfolio_url: Optional[str] = None


class Profile(ORMModel):
    id: str
    email: str
    full_name: str
    role: Role
    bio: Optional[str] = None
    skills: Optional[List[str]] = None
    portfolio_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# --- Company ---
class CompanyCreate(BaseModel):
    company_name: str
    logo_url: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None


class Company(ORMModel):
    id: str
    user_id: str
    company_name: str
    logo_url: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# --- Job ---
class JobCreate(BaseModel):
    title: str
    description: str
    tech_stack: List[str] = Field(default_factory=list)
    experience_level: ExperienceLevel
    salary_range: str
    employment_type: EmploymentType
    timezone: Optional[str] = None
    company_id: Optional[str] = None


class JobUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    tech_stack: Optional[List[str]] = None
    experience_level: Optional[ExperienceLevel] = None
    salary_range: Optional[str] = None
    employment_type: Optional[EmploymentType] = None
    timezone: Optional[str] = None
    status: Optional[JobStatus] = None


class JobFilters(BaseModel):
    search: Optional[str] = None
    experience_level: Optional[ExperienceLevel] = None
    employment_type: Optional[EmploymentType] = None
    tech_stack: Optional[str] = None


class Job(ORMModel):
    id: str
    employer_id: str
    company_id: str
    title: str
    description: str
    tech_stack: List[str]
    experience_level: ExperienceLevel
    salary_range: str
    employment_type: EmploymentType
    timezone: Optional[str] = None
    status: JobStatus
    created_at: datetime
    updated_at: datetime


class JobWithCompany(Job):
    company: Company


class EmployerJob(Job):
    application_count: int = 0


# --- Application ---
class ApplicationCreate(BaseModel):
    resume_url: str
    cover_letter: Optional[str] = None


class ApplicationStatusUpdate(BaseModel):
    status: ApplicationStatus


class Application(ORMModel):
    id: str
    job_id: str
    developer_id: str
    resume_url: str
    cover_letter: Optional[str] = None
    status: ApplicationStatus
    created_at: datetime
    updated_at: datetime


class ApplicationWithJob(Application):
    job: JobWithCompany


class ApplicationWithDetails(ApplicationWithJob):
    developer: Profile


# --- Bookmark ---
class Bookmark(ORMModel):
    id: str
    job_id: str
    developer_id: str
    created_at: datetime


class BookmarkWithJob(Bookmark):
    job: JobWithCompany


class BookmarkState(BaseModel):
    job_id: str
    bookmarked: bool


# --- Dashboards ---
class DeveloperStats(BaseModel):
    total_applications: int
    pending: int
    accepted: int
    bookmarks: int


class DeveloperDashboard(BaseModel):
    applications: List[ApplicationWithJob]
    bookmarks: List[BookmarkWithJob]
    stats: DeveloperStats


class EmployerStats(BaseModel):
    total_jobs: int
    open_jobs: int
    total_applications: int


class EmployerDashboard(BaseModel):
    jobs: List[EmployerJob]
    stats: EmployerStats


# --- Routing ---
class PageResolution(BaseModel):
    route: str
    params: dict[str, str] = Field(default_factory=dict)
    operation: Optional[str] = None
    required_role: Optional[Role] = None
    protected: bool = False
