"""
Google Calendar Integration Models
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class GoogleCalendarIntegration(Base):
    __tablename__ = "google_calendar_integrations"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(String(64), ForeignKey("doctors.id"), nullable=False, unique=True)

    # OAuth tokens (encrypted). The refresh token is the long-lived credential;
    # the access token is a cache refreshed on demand.
    refresh_token = Column(Text, nullable=False)
    access_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    # Google account info
    google_user_email = Column(String(255), nullable=True)
    calendar_id = Column(String(500), nullable=True)
    tasklist_id = Column(String(500), nullable=True)

    # Where to send the doctor after consent
    return_to = Column(String(1000), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor")
