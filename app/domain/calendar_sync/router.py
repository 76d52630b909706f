"""
Google integration router
Handles the doctor's OAuth connection and the manual sync / cleanup actions
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...auth import get_current_admin, get_current_doctor
from ...config import (
    ADMIN_APP_URL,
    CLINIC_TIMEZONE,
    GOOGLE_CALENDAR_ID,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    GOOGLE_TASKLIST_ID,
)
from ...database import get_db
from ...models import Doctor
from ...models_google_calendar import GoogleCalendarIntegration
from ...security_utils import create_oauth_state, verify_oauth_state
from ...services.google_calendar_service import (
    GoogleClientFactory,
    build_authorization_url,
    decrypt_token,
    encrypt_token,
    exchange_code_for_tokens,
    fetch_google_email,
    revoke_token,
)
from .errors import CalendarSyncError, CredentialMissingError, TokenRefreshError
from .schemas import (
    GoogleAuthUrlResponse,
    GoogleDebugConfigResponse,
    GoogleStatusResponse,
    MessageResponse,
    PurgeReportResponse,
    SyncReportResponse,
)
from .service import CalendarSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/doctor/google", tags=["Google Integration"])
admin_router = APIRouter(prefix="/api/admin/doctors", tags=["Google Integration"])


def get_google_client_factory() -> GoogleClientFactory:
    return GoogleClientFactory()


def get_calendar_sync_service(
    db: Session = Depends(get_db),
    client_factory=Depends(get_google_client_factory),
) -> CalendarSyncService:
    """Dependency injection for CalendarSyncService"""
    return CalendarSyncService(db, client_factory=client_factory)


def _get_integration(db: Session, doctor_id: str) -> Optional[GoogleCalendarIntegration]:
    return (
        db.query(GoogleCalendarIntegration)
        .filter(GoogleCalendarIntegration.doctor_id == doctor_id)
        .first()
    )


def _redirect_back(return_to: Optional[str], **params: str) -> RedirectResponse:
    base = return_to or ADMIN_APP_URL
    separator = "&" if "?" in base else "?"
    return RedirectResponse(url=f"{base}{separator}{urlencode(params)}", status_code=302)


async def _run_sync(service: CalendarSyncService, doctor_id: str) -> Any:
    try:
        report = await service.sync_all(doctor_id)
    except CredentialMissingError:
        return MessageResponse(success=False, message="Google not connected")
    except TokenRefreshError as e:
        logger.error(f"❌ Google authorization for doctor {doctor_id} is no longer valid: {e}")
        return MessageResponse(success=False, message="Google authorization expired, please reconnect")
    return SyncReportResponse.from_report(report)


async def _run_purge(service: CalendarSyncService, doctor_id: str) -> Any:
    try:
        report = await service.purge(doctor_id)
    except CredentialMissingError:
        return MessageResponse(success=False, message="Google not connected")
    except TokenRefreshError as e:
        logger.error(f"❌ Google authorization for doctor {doctor_id} is no longer valid: {e}")
        return MessageResponse(success=False, message="Google authorization expired, please reconnect")
    return PurgeReportResponse.from_report(report)


# ============================================================================
# OAUTH CONNECTION
# ============================================================================


@router.get("/auth-url", response_model=GoogleAuthUrlResponse)
async def get_google_auth_url(
    returnTo: Optional[str] = Query(None),
    doctor: Doctor = Depends(get_current_doctor),
):
    """Build the Google consent URL for the current doctor"""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    state = create_oauth_state(doctor.id, returnTo)
    logger.info(f"Google OAuth initiated for doctor: {doctor.email}")
    return GoogleAuthUrlResponse(url=build_authorization_url(state))


@router.get("/callback")
async def handle_google_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Google redirects here after consent; the signed state identifies the doctor"""
    payload = verify_oauth_state(state) if state else None
    if not payload:
        raise HTTPException(status_code=400, detail="Invalid or expired OAuth state")

    doctor_id = payload["doctor_id"]
    return_to = payload.get("return_to")

    if error or not code:
        logger.warning(f"⚠️ Google consent not granted for doctor {doctor_id}: {error}")
        return _redirect_back(return_to, google="error", reason=error or "missing_code")

    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")

    try:
        tokens = await exchange_code_for_tokens(code)
    except CalendarSyncError as e:
        logger.error(f"❌ Google callback failed for doctor {doctor_id}: {e}")
        return _redirect_back(return_to, google="error", reason="token_exchange_failed")

    access_token = tokens.get("access_token")
    refresh_token = tokens.get("refresh_token")
    integration = _get_integration(db, doctor_id)

    # Google only returns a refresh token on first consent unless prompt=consent is honoured
    if not access_token or (not refresh_token and not (integration and integration.refresh_token)):
        logger.error(f"❌ Google returned no usable tokens for doctor {doctor_id}")
        return _redirect_back(return_to, google="error", reason="missing_refresh_token")

    google_email = await fetch_google_email(access_token)
    token_expires_at = datetime.utcnow() + timedelta(seconds=int(tokens.get("expires_in", 3600)))

    if integration:
        if refresh_token:
            integration.refresh_token = encrypt_token(refresh_token)
        integration.access_token = encrypt_token(access_token)
        integration.token_expires_at = token_expires_at
        integration.google_user_email = google_email
        integration.return_to = return_to
    else:
        integration = GoogleCalendarIntegration(
            doctor_id=doctor_id,
            refresh_token=encrypt_token(refresh_token),
            access_token=encrypt_token(access_token),
            token_expires_at=token_expires_at,
            google_user_email=google_email,
            calendar_id=GOOGLE_CALENDAR_ID,
            tasklist_id=GOOGLE_TASKLIST_ID,
            return_to=return_to,
        )
        db.add(integration)

    db.commit()
    logger.info(f"✅ Google connected for doctor: {doctor.email} ({google_email})")
    return _redirect_back(return_to, google="connected")


@router.get("/status", response_model=GoogleStatusResponse)
async def get_google_status(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Get Google connection status"""
    integration = _get_integration(db, doctor.id)
    if not integration:
        return GoogleStatusResponse(connected=False, mode=service.mode.value)

    return GoogleStatusResponse(
        connected=True,
        googleEmail=integration.google_user_email,
        calendarId=integration.calendar_id,
        tasklistId=integration.tasklist_id,
        mode=service.mode.value,
    )


@router.post("/disconnect", response_model=MessageResponse)
async def disconnect_google(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Remove this system's items from Google, revoke access and forget the tokens"""
    integration = _get_integration(db, doctor.id)
    if not integration:
        raise HTTPException(status_code=404, detail="Google Calendar not connected")

    try:
        await service.purge(doctor.id)
    except CalendarSyncError as e:
        logger.warning(f"⚠️ Cleanup before disconnect failed for doctor {doctor.id}: {e}")

    try:
        if not await revoke_token(decrypt_token(integration.refresh_token)):
            logger.warning(f"⚠️ Google refused to revoke the token of doctor {doctor.id}")
    except Exception as e:
        logger.warning(f"Failed to revoke Google tokens: {str(e)}")

    db.delete(integration)
    db.commit()
    service.repository.clear_provider_links(doctor.id)

    logger.info(f"✅ Google disconnected for doctor: {doctor.email}")
    return MessageResponse(success=True, message="Google Calendar disconnected")


# ============================================================================
# MANUAL SYNC / CLEANUP
# ============================================================================


@router.post("/sync")
async def sync_doctor_appointments(
    doctor: Doctor = Depends(get_current_doctor),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Push every live appointment of the current doctor to Google"""
    return await _run_sync(service, doctor.id)


@router.post("/cleanup")
async def cleanup_doctor_items(
    doctor: Doctor = Depends(get_current_doctor),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Delete every appointment item this system created in the doctor's Google account"""
    return await _run_purge(service, doctor.id)


@router.get("/debug-config", response_model=GoogleDebugConfigResponse)
async def google_debug_config(
    doctor: Doctor = Depends(get_current_doctor),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    return GoogleDebugConfigResponse(
        clientIdConfigured=bool(GOOGLE_CLIENT_ID),
        clientSecretConfigured=bool(GOOGLE_CLIENT_SECRET),
        redirectUri=GOOGLE_REDIRECT_URI,
        mode=service.mode.value,
        calendarId=GOOGLE_CALENDAR_ID,
        tasklistId=GOOGLE_TASKLIST_ID,
        clinicTimezone=CLINIC_TIMEZONE,
    )


@admin_router.post("/{doctor_id}/google/sync")
async def admin_sync_doctor(
    doctor_id: str,
    admin: dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    if not db.query(Doctor).filter(Doctor.id == doctor_id).first():
        raise HTTPException(status_code=404, detail="Doctor not found")
    logger.info(f"🔄 Admin {admin.get('sub')} triggered Google sync for doctor {doctor_id}")
    return await _run_sync(service, doctor_id)


@admin_router.post("/{doctor_id}/google/cleanup")
async def admin_cleanup_doctor(
    doctor_id: str,
    admin: dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    if not db.query(Doctor).filter(Doctor.id == doctor_id).first():
        raise HTTPException(status_code=404, detail="Doctor not found")
    logger.info(f"🧹 Admin {admin.get('sub')} triggered Google cleanup for doctor {doctor_id}")
    return await _run_purge(service, doctor_id)
