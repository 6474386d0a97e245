"""
FastAPI Backend for the Tutor Marketplace - WITH SUPABASE INTEGRATION

Provides REST API endpoints for:
- Sign up / sign in via Supabase Auth
- Tutor search and portfolio management
- Session booking, status workflow and payment option selection
"""

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional, List, Dict, Any, Literal
from dataclasses import asdict
from datetime import datetime
import os
import sys
import time
import logging
import signal

# Add the tutor_marketplace package to Python path
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)

package_src = os.path.join(project_root, 'tutor_marketplace', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

# Setup enhanced logging with pretty formatting
from lib.logger import setup_logging, get_logger

setup_logging(level=logging.INFO, use_colors=True)

logger = get_logger("backend.main")

from tutor_marketplace.errors import MarketplaceError
from tutor_marketplace.identity_gateway import IdentityGateway
from tutor_marketplace.marketplace import TutorMarketplace
from tutor_marketplace.models import (
    GRADE_LEVELS,
    SUBJECTS,
    Identity,
    PaymentOption,
    SearchCriteria,
    SessionStatus,
)

from lib.supabase_client import get_supabase_client, create_auth_client
from lib.auth import get_current_user, require_student, require_tutor

# Singleton so the directory/store share one client across requests
_marketplace_instance = None


def get_marketplace() -> TutorMarketplace:
    """Get or create singleton TutorMarketplace instance."""
    global _marketplace_instance
    if _marketplace_instance is None:
        _marketplace_instance = TutorMarketplace(get_supabase_client())
    return _marketplace_instance


def get_auth_gateway() -> IdentityGateway:
    """Gateway on a fresh client for sign-in/sign-up flows."""
    return IdentityGateway(create_auth_client())


app = FastAPI(
    title="Tutor Marketplace API",
    description="REST API connecting students and tutors, backed by Supabase",
    version="1.0.0"
)

cors_origins = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    """Map core errors to JSON responses with the error's status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed", error=exc)
    else:
        logger.warning(f"{request.method} {request.url.path} rejected", data={"code": exc.code, "message": exc.message})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.request(request.method, request.url.path)
    start_time = time.time()
    response = await call_next(request)
    logger.response(response.status_code, request.url.path, duration=time.time() - start_time, data={
        "method": request.method,
    })
    return response


# ==================== Pydantic Models ====================

class SignUpRequest(BaseModel):
    name: str
    email: str
    password: str
    role: Literal["student", "tutor"]


class SignInRequest(BaseModel):
    email: str
    password: str


class ResendRequest(BaseModel):
    email: str


class PortfolioRequest(BaseModel):
    subjects: List[str]
    experience: Optional[str] = None
    hourly_rate: Optional[float] = None
    location: Optional[str] = None
    grade_level: Optional[str] = None
    availability_start: str = "09:00"
    availability_end: str = "17:00"


class SessionRequest(BaseModel):
    tutor_id: str
    subject: str
    scheduled_at: datetime
    grade_level: Optional[str] = None
    location: Optional[str] = None
    price_per_hour: Optional[float] = None


class StatusChange(BaseModel):
    status: str


class PaymentOptionRequest(BaseModel):
    option: str


def identity_to_dict(identity: Identity) -> Dict[str, Any]:
    return {
        "id": identity.id,
        "email": identity.email,
        "role": identity.role.value,
        "full_name": identity.full_name or None,
    }


# ==================== API Endpoints ====================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Tutor Marketplace API (Supabase Integrated)",
        "version": "1.0.0",
    }


@app.get("/api/catalog")
async def get_catalog():
    """Subjects, grade levels and payment options offered in the UI."""
    return {
        "subjects": SUBJECTS,
        "grade_levels": GRADE_LEVELS,
        "payment_options": [option.value for option in PaymentOption],
    }


@app.post("/api/auth/signup")
async def sign_up(body: SignUpRequest, gateway: IdentityGateway = Depends(get_auth_gateway)):
    result = await gateway.sign_up(body.name, body.email, body.password, body.role)
    logger.success("Account created", data={"role": result.identity.role.value, "verified": result.email_verified})
    return {
        "user": identity_to_dict(result.identity),
        "email_verified": result.email_verified,
        "message": result.message,
    }


@app.post("/api/auth/signin")
async def sign_in(body: SignInRequest, gateway: IdentityGateway = Depends(get_auth_gateway)):
    result = await gateway.sign_in(body.email, body.password)
    return {
        "user": identity_to_dict(result.identity),
        "access_token": result.access_token,
        "refresh_token": result.refresh_token,
    }


@app.post("/api/auth/resend")
async def resend_confirmation(body: ResendRequest, gateway: IdentityGateway = Depends(get_auth_gateway)):
    return await gateway.resend_confirmation_email(body.email)


@app.get("/api/me")
async def get_me(user: Identity = Depends(get_current_user)):
    return identity_to_dict(user)


@app.get("/api/tutors")
async def search_tutors(
    subject: Optional[str] = None,
    grade_level: Optional[str] = None,
    location: Optional[str] = None,
    max_price: Optional[float] = None,
    user: Identity = Depends(get_current_user),
    marketplace: TutorMarketplace = Depends(get_marketplace),
):
    """Search the tutor directory."""
    criteria = SearchCriteria(subject=subject, grade_level=grade_level, location=location, max_price=max_price)
    tutors = await marketplace.search_tutors(criteria)
    return {"tutors": [asdict(tutor) for tutor in tutors], "count": len(tutors)}


@app.get("/api/tutors/{tutor_id}/portfolio")
async def get_portfolio(
    tutor_id: str,
    user: Identity = Depends(get_current_user),
    marketplace: TutorMarketplace = Depends(get_marketplace),
):
    portfolio = await marketplace.get_portfolio(tutor_id)
    return asdict(portfolio)


@app.put("/api/portfolio")
async def upsert_portfolio(
    body: PortfolioRequest,
    user: Identity = Depends(require_tutor),
    marketplace: TutorMarketplace = Depends(get_marketplace),
):
    """Create or replace the caller's own portfolio."""
    portfolio = await marketplace.upsert_tutor_portfolio(user.id, user.id, body.model_dump())
    logger.success("Portfolio saved", data={"tutor_id": user.id[:20], "hourly_rate": portfolio.hourly_rate})
    return asdict(portfolio)


@app.get("/api/sessions")
async def list_sessions(
    status: Optional[str] = None,
    user: Identity = Depends(get_current_user),
    marketplace: TutorMarketplace = Depends(get_marketplace),
):
    """Session history for the caller (as student or tutor)."""
    status_filter = SessionStatus.parse(status) if status else None
    sessions = await marketplace.list_sessions(user.id, status=status_filter)
    return {"sessions": [asdict(session) for session in sessions]}


@app.post("/api/sessions", status_code=201)
async def create_session(
    body: SessionRequest,
    user: Identity = Depends(require_student),
    marketplace: TutorMarketplace = Depends(get_marketplace),
):
    """Request a session with a tutor."""
    booking = await marketplace.create_session(
        user,
        body.tutor_id,
        body.subject,
        body.scheduled_at,
        grade_level=body.grade_level,
        location=body.location,
        price_per_hour=body.price_per_hour,
    )
    logger.success("Session requested", data={"session_id": booking.session.id, "warnings": booking.warnings})
    return {"session": asdict(booking.session), "warnings": booking.warnings}


@app.get("/api/sessions/{session_id}")
async def get_session(
    session_id: str,
    user: Identity = Depends(get_current_user),
    marketplace: TutorMarketplace = Depends(get_marketplace),
):
    session = await marketplace.get_session(session_id, user.id)
    return asdict(session)


@app.post("/api/sessions/{session_id}/status")
async def change_session_status(
    session_id: str,
    body: StatusChange,
    user: Identity = Depends(get_current_user),
    marketplace: TutorMarketplace = Depends(get_marketplace),
):
    """Accept, reject, cancel or complete a session."""
    session = await marketplace.transition_session(session_id, user.id, body.status)
    return asdict(session)


@app.post("/api/sessions/{session_id}/payment-option")
async def choose_payment_option(
    session_id: str,
    body: PaymentOptionRequest,
    user: Identity = Depends(require_student),
    marketplace: TutorMarketplace = Depends(get_marketplace),
):
    session = await marketplace.set_payment_option(session_id, user.id, body.option)
    return asdict(session)


if __name__ == "__main__":
    import uvicorn

    def handle_exit(*args):
        """Handle graceful shutdown."""
        logger.section("SERVER SHUTDOWN", {"reason": "signal received"})
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_exit)
    signal.signal(signal.SIGTERM, handle_exit)

    try:
        uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
