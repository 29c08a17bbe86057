"""
clinicrm Web Server

FastAPI application exposing the CRM data layer: session endpoints,
role-scoped patient and follow-up lists, dashboard figures, demo data
and spreadsheet import.
"""

from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from clinicrm import __version__
from clinicrm.auth import (
    Identity,
    get_admin_identity,
    get_current_identity,
    set_auth_manager_provider,
)
from clinicrm.context import CRMContext, build_context
from clinicrm.db.client import is_configured as db_configured
from clinicrm.db.filters import OrderBy
from clinicrm.errors import AuthenticationError, CRMError, ErrorKind
from clinicrm.logging import get_logger
from clinicrm.services.followups import (
    filter_follow_ups,
    pending_follow_ups,
    recent_follow_ups,
)

logger = get_logger(__name__)


# Create FastAPI app
app = FastAPI(
    title="clinicrm",
    description="clinicrm - Patient follow-up CRM API",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_context: Optional[CRMContext] = None


def set_context(context: Optional[CRMContext]) -> None:
    """Install the context the routes use (tests pass one built on fakes)."""
    global _context
    _context = context


def get_context() -> CRMContext:
    """Dependency returning the shared context, building it on first use."""
    if _context is None:
        if not db_configured():
            raise HTTPException(status_code=503, detail="Database not configured")
        set_context(build_context())
    return _context


set_auth_manager_provider(lambda: get_context().auth)


# HTTP status for each error kind
STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONNECTIVITY: 503,
    ErrorKind.TRANSIENT: 503,
}


@app.exception_handler(CRMError)
async def crm_error_handler(request: Request, exc: CRMError):
    if isinstance(exc, AuthenticationError):
        status_code = 401
    else:
        status_code = STATUS_BY_KIND.get(exc.kind, 500)
    logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "error": exc.to_dict()})


# Request/Response models
class LoginRequest(BaseModel):
    """Request model for user login."""
    email: str
    password: str


class SessionResponse(BaseModel):
    """Response model for session endpoints."""
    access_token: Optional[str] = None
    bypass: bool = False
    profile: Optional[dict] = None


def _session_response(context: CRMContext) -> SessionResponse:
    auth = context.auth
    return SessionResponse(
        access_token=auth.session.access_token if auth.session else None,
        bypass=auth.is_bypass,
        profile=auth.profile.model_dump(mode="json") if auth.profile else None,
    )


# Routes
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "database": db_configured(),
        "timestamp": datetime.now().isoformat(),
    }


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post("/api/auth/login", response_model=SessionResponse)
async def login(request: LoginRequest, context: CRMContext = Depends(get_context)):
    """
    Log in with email and password.

    The reserved demo credentials start an admin bypass session instead.
    """
    await context.auth.login(request.email, request.password)
    return _session_response(context)


@app.post("/api/auth/bypass", response_model=SessionResponse)
async def bypass(context: CRMContext = Depends(get_context)):
    """Start an admin bypass session."""
    await context.auth.bypass_auth()
    return _session_response(context)


@app.post("/api/auth/logout")
async def logout(context: CRMContext = Depends(get_context)):
    """End the server's session."""
    await context.auth.logout()
    return {"status": "logged_out"}


@app.get("/api/auth/me")
async def get_me(identity: Identity = Depends(get_current_identity)):
    """Get the caller's identity."""
    return {
        "id": identity.id,
        "email": identity.email,
        "role": identity.role.value if identity.role else None,
        "bypass": identity.bypass,
        "profile": identity.profile.model_dump(mode="json") if identity.profile else None,
    }


# =============================================================================
# DATA ENDPOINTS
# =============================================================================

@app.get("/api/patients")
async def list_patients(
    status: Optional[list[str]] = Query(None, description="Statuses to include"),
    search: Optional[str] = Query(None, description="Name pattern, '*' or '%' as wildcard"),
    order: str = Query("created_at", description="Column to sort by"),
    ascending: bool = Query(False),
    page: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    identity: Identity = Depends(get_current_identity),
    context: CRMContext = Depends(get_context),
):
    """List patients visible to the caller."""
    result = await context.patients(
        identity.profile,
        filters={"status": status or [], "name": search},
        order_by=OrderBy(order, ascending=ascending),
        page=page,
        limit=limit,
    )
    if result.error is not None and not result.data:
        raise result.error

    return {
        "patients": result.data,
        "count": result.count,
        "origin": result.origin,
        "page": page,
        "limit": limit,
    }


@app.get("/api/follow-ups")
async def list_follow_ups(
    pending: bool = Query(False, description="Only follow-ups without a response"),
    kind: Optional[str] = Query(None, pattern="^(call|message)$"),
    response: Optional[str] = Query(None, description="Response to match, or 'none'"),
    identity: Identity = Depends(get_current_identity),
    context: CRMContext = Depends(get_context),
):
    """Follow-ups with patient and clinic names, newest first."""
    items = filter_follow_ups(await context.follow_up_view(identity.profile), kind=kind, response=response)
    items = pending_follow_ups(items) if pending else recent_follow_ups(items, limit=len(items))
    return {
        "follow_ups": [item.model_dump(mode="json") for item in items],
        "count": len(items),
    }


@app.get("/api/stats")
async def get_stats(
    identity: Identity = Depends(get_current_identity),
    context: CRMContext = Depends(get_context),
):
    """Dashboard statistics for the caller."""
    stats = await context.dashboard(identity.profile)
    return stats.to_dict()


@app.get("/api/outreach")
async def get_outreach(
    clinic_id: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    context: CRMContext = Depends(get_context),
):
    """The clinic's outreach window and whether it is open now."""
    if clinic_id is None and identity.profile is not None:
        clinic_id = identity.profile.clinic_id
    window = await context.outreach_window(clinic_id)
    now = datetime.now()
    next_time = window.next_open(now)
    return {
        "clinic_id": clinic_id,
        "start": window.start.isoformat(),
        "end": window.end.isoformat(),
        "excluded_days": sorted(window.excluded_days),
        "interval_minutes": int(window.interval.total_seconds() // 60),
        "open_now": window.is_open(now),
        "next_open": next_time.isoformat() if next_time else None,
    }


# =============================================================================
# DEMO DATA & IMPORT
# =============================================================================

@app.post("/api/demo")
async def generate_demo(
    identity: Identity = Depends(get_current_identity),
    context: CRMContext = Depends(get_context),
):
    """Generate demo patients and follow-ups if the store is empty."""
    dataset = await context.demo_generator().generate_demo_data(identity.profile)
    if dataset is None:
        return {"generated": False, "patients": 0, "follow_ups": 0}
    return {
        "generated": True,
        "patients": len(dataset.patients),
        "follow_ups": len(dataset.follow_ups),
        "simulated": dataset.patients_simulated or dataset.follow_ups_simulated,
    }


@app.delete("/api/demo")
async def clear_demo(
    identity: Identity = Depends(get_admin_identity),
    context: CRMContext = Depends(get_context),
):
    """Delete all patients and follow-ups (admin only)."""
    results = await context.demo_generator().clear_demo_data()
    return {"cleared": results}


@app.post("/api/import")
async def import_patients(
    file: UploadFile = File(...),
    identity: Identity = Depends(get_current_identity),
    context: CRMContext = Depends(get_context),
):
    """Import patients from an uploaded .csv, .xlsx or .xls file."""
    data = await file.read()
    report = await context.importer(identity.profile).import_bytes(data, file.filename or "upload.csv")
    return {
        "filename": report.filename,
        "success_count": report.success_count,
        "error_count": report.error_count,
        "errors": report.errors,
    }


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the server."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
