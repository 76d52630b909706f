"""Calendar sync schemas - response models for the Google integration endpoints"""

from typing import Optional

from pydantic import BaseModel

from .items import PurgeReport, SyncReport


class GoogleAuthUrlResponse(BaseModel):
    success: bool = True
    url: str


class GoogleStatusResponse(BaseModel):
    success: bool = True
    connected: bool
    googleEmail: Optional[str] = None
    calendarId: Optional[str] = None
    tasklistId: Optional[str] = None
    mode: str


class SyncReportResponse(BaseModel):
    success: bool = True
    message: str
    created: int = 0
    updated: int = 0
    converted: int = 0
    skipped: int = 0
    failed: int = 0

    @classmethod
    def from_report(cls, report: SyncReport) -> "SyncReportResponse":
        total = report.created + report.updated + report.converted
        return cls(
            message=f"Synced {total} appointment(s)",
            created=report.created,
            updated=report.updated,
            converted=report.converted,
            skipped=report.skipped,
            failed=report.failed,
        )


class PurgeReportResponse(BaseModel):
    success: bool = True
    message: str
    tasksDeleted: int = 0
    eventsDeleted: int = 0
    failed: int = 0

    @classmethod
    def from_report(cls, report: PurgeReport) -> "PurgeReportResponse":
        return cls(
            message=f"Removed {report.tasks_deleted} task(s) and {report.events_deleted} event(s)",
            tasksDeleted=report.tasks_deleted,
            eventsDeleted=report.events_deleted,
            failed=report.failed,
        )


class MessageResponse(BaseModel):
    success: bool
    message: str


class GoogleDebugConfigResponse(BaseModel):
    success: bool = True
    clientIdConfigured: bool
    clientSecretConfigured: bool
    redirectUri: str
    mode: str
    calendarId: str
    tasklistId: str
    clinicTimezone: str
