"""Page route table.

Routes are checked top to bottom; the first pattern that matches wins and
anything unmatched falls back to ``home``. Each entry names the role it
requires (if any) and the rule operation the page is built on.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

import models
import schemas
from errors import AuthenticationError, AuthorizationError


@dataclass(frozen=True)
class Route:
    name: str
    pattern: re.Pattern
    operation: Optional[str] = None
    protected: bool = False
    required_role: Optional[models.Role] = None


@dataclass(frozen=True)
class RouteMatch:
    route: Route
    params: dict[str, str] = field(default_factory=dict)

    def to_schema(self) -> schemas.PageResolution:
        return schemas.PageResolution(
            route=self.route.name,
            params=self.params,
            operation=self.route.operation,
            required_role=self.route.required_role,
            protected=self.route.protected,
        )


def _route(name, path, operation=None, protected=False, role=None) -> Route:
    return Route(
        name=name,
        pattern=re.compile(f"^{path}$"),
        operation=operation,
        protected=protected or role is not None,
        required_role=role,
    )


_ID = r"(?P<job_id>[^/]+)"

ROUTES: tuple[Route, ...] = (
    _route("signup", "/signup", "sign_up"),
    _route("login", "/login", "sign_in"),
    _route("job_detail", f"/jobs/{_ID}", "get_job", protected=True),
    _route("jobs", "/jobs", "list_open_jobs", protected=True),
    _route("developer_dashboard", "/developer/dashboard", "list_dashboard_data", role=models.Role.DEVELOPER),
    _route("developer_profile", "/developer/profile", "update_profile", role=models.Role.DEVELOPER),
    _route("employer_dashboard", "/employer/dashboard", "list_employer_jobs", role=models.Role.EMPLOYER),
    _route("company_profile", "/employer/company", "save_company", role=models.Role.EMPLOYER),
    _route("create_job", "/employer/create-job", "create_job", role=models.Role.EMPLOYER),
    _route("edit_job", f"/employer/jobs/{_ID}/edit", "update_job", role=models.Role.EMPLOYER),
    _route(
        "job_applications",
        f"/employer/jobs/{_ID}/applications",
        "list_applications_for_job",
        role=models.Role.EMPLOYER,
    ),
)

HOME = Route(name="home", pattern=re.compile(r"^.*$"))


def resolve(path: str) -> RouteMatch:
    # Trailing slashes are not significant, except for the root itself
    path = path.split("?", 1)[0]
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    for route in ROUTES:
        match = route.pattern.match(path)
        if match:
            return RouteMatch(route=route, params=match.groupdict())
    return RouteMatch(route=HOME)


def authorize(match: RouteMatch, actor: Optional[schemas.ActorSession]) -> RouteMatch:
    route = match.route
    if route.protected and actor is None:
        raise AuthenticationError("Sign in to view this page", route=route.name)
    if route.required_role is not None and actor.role != route.required_role:
        raise AuthorizationError(
            f"This page is only available to {route.required_role.value} accounts",
            route=route.name,
        )
    return match
