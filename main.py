from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import auth
import logic
import routing
import schemas
from auth import get_bearer_token, get_current_actor, get_optional_actor
from database import create_db_and_tables, get_db
from errors import JobBoardError
from models import EmploymentType, ExperienceLevel
from observability import init_observability
from request_id_middleware import RequestIdMiddleware
from settings import Settings, get_settings


# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup (if they don't exist yet)."""
    create_db_and_tables()
    yield


app = FastAPI(
    title=get_settings().app_name,
    description="Job board API connecting developers and employers",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


@app.exception_handler(JobBoardError)
async def job_board_error_handler(request: Request, exc: JobBoardError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request failed",
        error=type(exc).__name__,
        detail=exc.message,
        status_code=exc.status_code,
        **exc.context,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.get("/health", tags=["Meta"])
def health():
    return {"status": "ok"}


# --- Auth Endpoints ---
@app.post("/auth/signup", response_model=schemas.AuthToken, status_code=status.HTTP_201_CREATED, tags=["Auth"])
def sign_up_endpoint(
    data: schemas.SignUpRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return auth.sign_up(db, data.email, data.password, data.full_name, data.role, settings)


@app.post("/auth/signin", response_model=schemas.AuthToken, tags=["Auth"])
def sign_in_endpoint(
    data: schemas.SignInRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return auth.sign_in(db, data.email, data.password, settings)


@app.post("/auth/signout", status_code=status.HTTP_204_NO_CONTENT, tags=["Auth"])
def sign_out_endpoint(
    actor: schemas.ActorSession = Depends(get_current_actor),
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    auth.sign_out(db, token, settings)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/auth/me", response_model=schemas.Profile, tags=["Auth"])
def get_me(
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Returns the authenticated user's profile."""
    return logic.get_profile(db, actor)


# --- Profile Endpoints ---
@app.get("/profile", response_model=schemas.Profile, tags=["Profile"])
def get_profile_endpoint(
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.get_profile(db, actor)


@app.put("/profile", response_model=schemas.Profile, tags=["Profile"])
def update_profile_endpoint(
    update: schemas.ProfileUpdate,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.update_profile(db, actor, update)


# --- Company Endpoints ---
@app.get("/company", response_model=schemas.Company, tags=["Company"])
def get_company_endpoint(
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    company = logic.get_own_company(db, actor)
    if company is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return company


@app.put("/company", response_model=schemas.Company, tags=["Company"])
def save_company_endpoint(
    data: schemas.CompanyCreate,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.save_company(db, actor, data)


# --- Job Endpoints ---
@app.get("/jobs", response_model=List[schemas.JobWithCompany], tags=["Jobs"])
def list_jobs_endpoint(
    search: Optional[str] = None,
    experience_level: Optional[ExperienceLevel] = None,
    employment_type: Optional[EmploymentType] = None,
    tech_stack: Optional[str] = None,
    db: Session = Depends(get_db),
):
    filters = schemas.JobFilters(
        search=search,
        experience_level=experience_level,
        employment_type=employment_type,
        tech_stack=tech_stack,
    )
    return logic.list_open_jobs(db, filters)


@app.get("/jobs/{job_id}", response_model=schemas.JobWithCompany, tags=["Jobs"])
def get_job_endpoint(job_id: str, db: Session = Depends(get_db)):
    return logic.get_job(db, job_id)


@app.post("/jobs", response_model=schemas.JobWithCompany, status_code=status.HTTP_201_CREATED, tags=["Jobs"])
def create_job_endpoint(
    data: schemas.JobCreate,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.create_job(db, actor, data)


@app.patch("/jobs/{job_id}", response_model=schemas.JobWithCompany, tags=["Jobs"])
def update_job_endpoint(
    job_id: str,
    update: schemas.JobUpdate,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.update_job(db, job_id, actor, update)


@app.delete("/jobs/{job_id}", tags=["Jobs"])
def delete_job_endpoint(
    job_id: str,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    logger.info("Attempting to delete job", job_id=job_id)
    logic.delete_job(db, job_id, actor)
    return {"status": "deleted", "job_id": job_id}


# --- Application Endpoints ---
@app.post(
    "/jobs/{job_id}/applications",
    response_model=schemas.Application,
    status_code=status.HTTP_201_CREATED,
    tags=["Applications"],
)
def apply_endpoint(
    job_id: str,
    data: schemas.ApplicationCreate,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.apply_to_job(db, job_id, actor, data.resume_url, data.cover_letter)


@app.get(
    "/jobs/{job_id}/applications",
    response_model=List[schemas.ApplicationWithDetails],
    tags=["Applications"],
)
def list_applications_endpoint(
    job_id: str,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.list_applications_for_job(db, job_id, actor)


@app.get("/jobs/{job_id}/applied", tags=["Applications"])
def has_applied_endpoint(
    job_id: str,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return {"job_id": job_id, "applied": logic.has_applied(db, job_id, actor)}


@app.patch(
    "/applications/{application_id}/status",
    response_model=schemas.Application,
    tags=["Applications"],
)
def set_application_status_endpoint(
    application_id: str,
    data: schemas.ApplicationStatusUpdate,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.set_application_status(db, application_id, actor, data.status)


# --- Bookmark Endpoints ---
@app.post("/jobs/{job_id}/bookmark", response_model=schemas.BookmarkState, tags=["Bookmarks"])
def toggle_bookmark_endpoint(
    job_id: str,
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    bookmarked = logic.toggle_bookmark(db, job_id, actor)
    return schemas.BookmarkState(job_id=job_id, bookmarked=bookmarked)


@app.get("/bookmarks/job-ids", response_model=List[str], tags=["Bookmarks"])
def bookmarked_job_ids_endpoint(
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.list_bookmarked_job_ids(db, actor)


# --- Dashboards ---
@app.get("/developer/dashboard", response_model=schemas.DeveloperDashboard, tags=["Dashboards"])
async def developer_dashboard_endpoint(
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return await logic.list_dashboard_data(db, actor)


@app.get("/employer/dashboard", response_model=schemas.EmployerDashboard, tags=["Dashboards"])
def employer_dashboard_endpoint(
    actor: schemas.ActorSession = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return logic.list_employer_jobs(db, actor)


# --- Page routes ---
@app.get("/pages/resolve", response_model=schemas.PageResolution, tags=["Pages"])
def resolve_page_endpoint(
    path: str,
    actor: Optional[schemas.ActorSession] = Depends(get_optional_actor),
):
    """Resolve a page path against the route table and check the actor may open it."""
    match = routing.authorize(routing.resolve(path), actor)
    return match.to_schema()


# --- Main execution --- (for running with uvicorn)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
