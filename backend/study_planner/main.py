"""FastAPI application entrypoint and HTTP controllers.

This module maps HTTP requests onto the resource services. Controllers
are intentionally thin: they resolve the caller through
`auth.get_current_user_id`, delegate to a service, and wrap the result in
`{"success": true, <key>: ...}`. Errors from any layer leave through the
exception handlers below as `{"error": <kind>, "message": <text>}`.

Endpoints implemented:
- GET /health
- POST /auth/register
- POST /auth/login
- GET /auth/me
- GET, POST /study-plans
- GET, PUT, DELETE /study-plans/{plan_id}
- GET, POST /study-materials?studyPlanId=
- GET, PUT, DELETE /study-materials/{material_id}
- GET, POST /study-sessions?studyPlanId=
- GET, PUT, DELETE /study-sessions/{session_id}
- GET, POST, PUT /study-recommendations?studyPlanId=
- GET, PUT, DELETE /study-recommendations/{recommendation_id}
"""

import json
import logging
import time
import uuid
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import repositories, services
from .auth import get_current_user_id
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import MethodNotSupported, NotFound, ServiceError, Unauthorized, ValidationFailed
from .schemas import (
    LoginIn,
    RegisterIn,
    StudyMaterialOut,
    StudyPlanOut,
    StudyRecommendationOut,
    StudySessionOut,
    UserOut,
    dump,
)
from .utils.rate_limit import InMemoryRateLimiter

app = FastAPI(title="Smart Study Planner API")
logger = logging.getLogger("study_planner.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_login_limiter = InMemoryRateLimiter()

# Wide-open CORS keeps a locally served frontend working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()

_SENSITIVE_KEYS = {"password", "passwordHash", "password_hash"}


def _scrub(value):
    """Remove password material from any nested payload."""
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items() if k not in _SENSITIVE_KEYS}
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    return value


def _respond(status_code: int = 200, **body) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=_scrub(body))


def _error(status_code: int, kind: str, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": kind, "message": message}, headers=headers)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "client": request.client.host if request.client else "unknown",
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return _error(exc.status_code, exc.kind, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{where}: {first.get('msg', 'invalid value')}" if where else "invalid request"
    return _error(400, ValidationFailed.kind, message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kinds = {
        401: Unauthorized.kind,
        404: NotFound.kind,
        405: MethodNotSupported.kind,
        429: "rate_limited",
    }
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error(exc.status_code, kinds.get(exc.status_code, "http_error"), message, getattr(exc, "headers", None))


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("store_failure %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, "internal_error", "Internal server error")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_error %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, "internal_error", "Internal server error")


def _require_plan_id(study_plan_id: Optional[int]) -> int:
    if study_plan_id is None:
        raise ValidationFailed("studyPlanId is required")
    return study_plan_id


def _login_key(request: Request, email: str) -> str:
    host = request.client.host if request.client else "unknown"
    return f"{host}:{email.strip().lower()}"


def _enforce_login_rate_limit(key: str) -> None:
    allowed, retry_after = _login_limiter.allow(
        key, settings.LOGIN_RATE_LIMIT_PER_MIN, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"too many login attempts; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


@app.get("/health")
def health():
    """Liveness probe."""
    return {"status": "ok"}


@app.post('/auth/register', status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new account and return its public representation."""
    user = services.AuthService(db).register(payload.email, payload.password, payload.name)
    return _respond(201, success=True, user=dump(UserOut, user))


@app.post('/auth/login')
def login(payload: LoginIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate a user and return a signed JWT token.

    The token carries `user_id` and `email`. Repeated attempts for the
    same account from one client are throttled.
    """
    key = _login_key(request, payload.email)
    _enforce_login_rate_limit(key)
    result = services.AuthService(db).authenticate(payload.email, payload.password)
    if not result:
        raise Unauthorized('invalid credentials')
    user, token = result
    _login_limiter.forget(key)
    return _respond(200, success=True, token=token, user=dump(UserOut, user))


@app.get('/auth/me')
def me(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
    user = repositories.UserRepository(db).get(user_id)
    return _respond(200, success=True, user=dump(UserOut, user))


# --- study plans ---------------------------------------------------------------

@app.get('/study-plans')
def list_study_plans(
    status: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    """List the caller's study plans, newest first."""
    plans = services.StudyPlanService(db).list(user_id, status)
    return _respond(200, success=True, studyPlans=[dump(StudyPlanOut, p) for p in plans])


@app.post('/study-plans')
def create_study_plan(
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    plan = services.StudyPlanService(db).create(user_id, payload)
    return _respond(201, success=True, studyPlan=dump(StudyPlanOut, plan))


@app.get('/study-plans/{plan_id}')
def get_study_plan(plan_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
    plan = services.StudyPlanService(db).get(user_id, plan_id)
    return _respond(200, success=True, studyPlan=dump(StudyPlanOut, plan))


@app.put('/study-plans/{plan_id}')
def update_study_plan(
    plan_id: int,
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    """Change only the provided fields of a plan."""
    plan = services.StudyPlanService(db).update(user_id, plan_id, payload)
    return _respond(200, success=True, studyPlan=dump(StudyPlanOut, plan))


@app.delete('/study-plans/{plan_id}')
def delete_study_plan(plan_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
    """Delete a plan and everything attached to it."""
    services.StudyPlanService(db).delete(user_id, plan_id)
    return _respond(200, success=True, message='Study plan deleted successfully')


# --- study materials -----------------------------------------------------------

@app.get('/study-materials')
def list_study_materials(
    study_plan_id: Optional[int] = Query(default=None, alias="studyPlanId"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    items = services.StudyMaterialService(db).list(user_id, _require_plan_id(study_plan_id))
    return _respond(200, success=True, studyMaterials=[dump(StudyMaterialOut, m) for m in items])


@app.post('/study-materials')
def create_study_material(
    study_plan_id: Optional[int] = Query(default=None, alias="studyPlanId"),
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    item = services.StudyMaterialService(db).create(user_id, _require_plan_id(study_plan_id), payload)
    return _respond(201, success=True, studyMaterial=dump(StudyMaterialOut, item))


@app.get('/study-materials/{material_id}')
def get_study_material(material_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
    item = services.StudyMaterialService(db).get(user_id, material_id)
    return _respond(200, success=True, studyMaterial=dump(StudyMaterialOut, item))


@app.put('/study-materials/{material_id}')
def update_study_material(
    material_id: int,
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    item = services.StudyMaterialService(db).update(user_id, material_id, payload)
    return _respond(200, success=True, studyMaterial=dump(StudyMaterialOut, item))


@app.delete('/study-materials/{material_id}')
def delete_study_material(material_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
    services.StudyMaterialService(db).delete(user_id, material_id)
    return _respond(200, success=True, message='Study material deleted successfully')


# --- study sessions ------------------------------------------------------------

@app.get('/study-sessions')
def list_study_sessions(
    study_plan_id: Optional[int] = Query(default=None, alias="studyPlanId"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    """List a plan's sessions in start-time order."""
    items = services.StudySessionService(db).list(user_id, _require_plan_id(study_plan_id))
    return _respond(200, success=True, studySessions=[dump(StudySessionOut, s) for s in items])


@app.post('/study-sessions')
def create_study_session(
    study_plan_id: Optional[int] = Query(default=None, alias="studyPlanId"),
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    item = services.StudySessionService(db).create(user_id, _require_plan_id(study_plan_id), payload)
    return _respond(201, success=True, studySession=dump(StudySessionOut, item))


@app.get('/study-sessions/{session_id}')
def get_study_session(session_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
    item = services.StudySessionService(db).get(user_id, session_id)
    return _respond(200, success=True, studySession=dump(StudySessionOut, item))


@app.put('/study-sessions/{session_id}')
def update_study_session(
    session_id: int,
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    item = services.StudySessionService(db).update(user_id, session_id, payload)
    return _respond(200, success=True, studySession=dump(StudySessionOut, item))


@app.delete('/study-sessions/{session_id}')
def delete_study_session(session_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
    services.StudySessionService(db).delete(user_id, session_id)
    return _respond(200, success=True, message='Study session deleted successfully')


# --- study recommendations -----------------------------------------------------

@app.get('/study-recommendations')
def list_study_recommendations(
    study_plan_id: Optional[int] = Query(default=None, alias="studyPlanId"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    """List a plan's recommendations, high priority first."""
    items = services.StudyRecommendationService(db).list(user_id, _require_plan_id(study_plan_id))
    return _respond(200, success=True, recommendations=[dump(StudyRecommendationOut, r) for r in items])


@app.post('/study-recommendations')
def create_study_recommendation(
    study_plan_id: Optional[int] = Query(default=None, alias="studyPlanId"),
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    item = services.StudyRecommendationService(db).create(user_id, _require_plan_id(study_plan_id), payload)
    return _respond(201, success=True, recommendation=dump(StudyRecommendationOut, item))


@app.put('/study-recommendations')
def update_study_recommendation_in_plan(
    study_plan_id: Optional[int] = Query(default=None, alias="studyPlanId"),
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    """Update a recommendation addressed as `{id, ...fields}` within a plan.

    This is how the planner marks a recommendation as applied
    (`{"id": 3, "isApplied": true}`). `id` may be a JSON integer or a
    string of digits.
    """
    plan_id = _require_plan_id(study_plan_id)
    fields = dict(payload or {})
    rec_id = fields.pop('id', None)
    if rec_id is None:
        raise ValidationFailed('Recommendation ID is required')
    if isinstance(rec_id, str) and rec_id.strip().isdigit():
        rec_id = int(rec_id.strip())
    if not isinstance(rec_id, int) or isinstance(rec_id, bool):
        raise ValidationFailed('id: must be an integer')
    item = services.StudyRecommendationService(db).update_in_plan(user_id, plan_id, rec_id, fields)
    return _respond(200, success=True, recommendation=dump(StudyRecommendationOut, item))


@app.get('/study-recommendations/{recommendation_id}')
def get_study_recommendation(
    recommendation_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)
):
    item = services.StudyRecommendationService(db).get(user_id, recommendation_id)
    return _respond(200, success=True, recommendation=dump(StudyRecommendationOut, item))


@app.put('/study-recommendations/{recommendation_id}')
def update_study_recommendation(
    recommendation_id: int,
    payload: Optional[dict] = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
):
    item = services.StudyRecommendationService(db).update(user_id, recommendation_id, payload)
    return _respond(200, success=True, recommendation=dump(StudyRecommendationOut, item))


@app.delete('/study-recommendations/{recommendation_id}')
def delete_study_recommendation(
    recommendation_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)
):
    services.StudyRecommendationService(db).delete(user_id, recommendation_id)
    return _respond(200, success=True, message='Recommendation deleted successfully')
