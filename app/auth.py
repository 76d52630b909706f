import logging
from typing import Any, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import Doctor, Patient
from .security_utils import verify_jwt_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ROLE_DOCTOR = "doctor"
ROLE_PATIENT = "patient"
ROLE_ADMIN = "admin"


def _decode_bearer(credentials: Optional[HTTPAuthorizationCredentials], role: str) -> dict[str, Any]:
    """Verify the bearer token and check it was issued for ``role``"""
    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, token length: {len(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")

    payload = verify_jwt_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    if payload.get("role") != role:
        logger.warning(f"⚠️ Token with role {payload.get('role')!r} used on a {role} route")
        raise HTTPException(status_code=403, detail="Not authorized")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token claims")
    return payload


async def get_current_doctor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Doctor:
    payload = _decode_bearer(credentials, ROLE_DOCTOR)
    doctor = db.query(Doctor).filter(Doctor.id == payload["sub"]).first()
    if not doctor:
        raise HTTPException(status_code=401, detail="Doctor not found")
    return doctor


async def get_current_patient(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Patient:
    payload = _decode_bearer(credentials, ROLE_PATIENT)
    patient = db.query(Patient).filter(Patient.id == payload["sub"]).first()
    if not patient:
        raise HTTPException(status_code=401, detail="Patient not found")
    return patient


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict[str, Any]:
    """Admins have no table of their own; the token itself is the principal"""
    return _decode_bearer(credentials, ROLE_ADMIN)
