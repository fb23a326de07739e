"""
Google Calendar Service
Pushes committed appointments to the professional's Google Calendar
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx
from cryptography.fernet import Fernet
from sqlalchemy.orm import Session

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, LOCAL_TIMEZONE, SECRET_KEY
from ..domain.scheduling.entities import Appointment, AppointmentStatus, CalendarSyncOp
from ..domain.scheduling.repository import SqlDirectory
from ..domain.scheduling.time_range import combine_date_and_time
from ..models_google_calendar import GoogleCalendarIntegration

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"


def get_cipher() -> Fernet:
    return Fernet(SECRET_KEY.encode()[:44].ljust(44, b"="))


async def get_valid_access_token(integration: GoogleCalendarIntegration, db: Session) -> Optional[str]:
    """
    Get a valid access token, refreshing if necessary
    Returns None if refresh fails
    """
    try:
        cipher_suite = get_cipher()

        # Token still valid for at least 5 minutes
        if integration.token_expires_at > datetime.utcnow() + timedelta(minutes=5):
            return cipher_suite.decrypt(integration.access_token.encode()).decode()

        logger.info("🔄 Google Calendar token expired, refreshing...")
        refresh_token = cipher_suite.decrypt(integration.refresh_token.encode()).decode()

        async with httpx.AsyncClient() as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": GOOGLE_CLIENT_ID,
                    "client_secret": GOOGLE_CLIENT_SECRET,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            return None

        tokens = response.json()
        new_access_token = tokens.get("access_token")
        expires_in = tokens.get("expires_in", 3600)

        if not new_access_token:
            logger.error("❌ No access token in refresh response")
            return None

        integration.access_token = cipher_suite.encrypt(new_access_token.encode()).decode()
        integration.token_expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
        db.commit()

        logger.info("✅ Google Calendar token refreshed successfully")
        return new_access_token

    except Exception as e:
        logger.error(f"❌ Error getting valid access token: {str(e)}")
        return None


def build_event_data(appointment: Appointment, subject: str) -> dict:
    """Event payload in local wall-clock time with the clinic timezone"""
    start = combine_date_and_time(appointment.date, appointment.start_time)
    end = combine_date_and_time(appointment.date, appointment.end_time)

    event_data = {
        "summary": subject,
        "description": f"Status: {appointment.status.value}",
        "start": {"dateTime": start.isoformat(), "timeZone": LOCAL_TIMEZONE},
        "end": {"dateTime": end.isoformat(), "timeZone": LOCAL_TIMEZONE},
    }
    if appointment.notes:
        event_data["description"] += f"\n\nNotes: {appointment.notes}"
    if appointment.status in (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW):
        event_data["status"] = "cancelled"
    return event_data


class GoogleCalendarSync:
    """Calendar sync collaborator backed by the Google Calendar REST API"""

    def __init__(self, db: Session):
        self.db = db
        self.directory = SqlDirectory(db)

    def get_integration(self, professional_id: str) -> Optional[GoogleCalendarIntegration]:
        return (
            self.db.query(GoogleCalendarIntegration)
            .filter(GoogleCalendarIntegration.professional_id == professional_id)
            .first()
        )

    def is_connected(self, professional_id: str) -> bool:
        integration = self.get_integration(professional_id)
        return bool(integration and integration.auto_sync_enabled)

    def subject_for(self, appointment: Appointment) -> str:
        name = self.directory.patient_name(appointment.subject_ref) if appointment.subject_ref else None
        return name or appointment.subject_ref or "Appointment"

    async def sync(
        self,
        appointment: Appointment,
        op: CalendarSyncOp,
        external_event_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Create, update or delete the event mirroring an appointment.
        Returns the Google Calendar event ID if successful, None otherwise
        """
        try:
            integration = self.get_integration(appointment.professional_id)
            if not integration or not integration.auto_sync_enabled:
                logger.info("ℹ️ Google Calendar not connected or auto-sync disabled")
                return None

            access_token = await get_valid_access_token(integration, self.db)
            if not access_token:
                logger.error("❌ Failed to get valid access token")
                return None

            calendar_id = integration.google_calendar_id or "primary"
            events_url = f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events"
            headers = {"Authorization": f"Bearer {access_token}"}

            # An update without a known event falls back to creating one
            if op is CalendarSyncOp.UPDATE and not external_event_id:
                op = CalendarSyncOp.CREATE

            async with httpx.AsyncClient() as client:
                if op is CalendarSyncOp.DELETE:
                    if not external_event_id:
                        return None
                    response = await client.delete(f"{events_url}/{external_event_id}", headers=headers)
                    if response.status_code not in [200, 204, 410]:
                        logger.error(f"❌ Failed to delete calendar event: {response.text}")
                        return None
                    logger.info(f"✅ Google Calendar event deleted: {external_event_id}")
                    return external_event_id

                event_data = build_event_data(appointment, self.subject_for(appointment))
                if op is CalendarSyncOp.UPDATE:
                    response = await client.put(
                        f"{events_url}/{external_event_id}", headers=headers, json=event_data
                    )
                else:
                    response = await client.post(events_url, headers=headers, json=event_data)

            if response.status_code not in [200, 201]:
                logger.error(f"❌ Failed to {op.value} calendar event: {response.text}")
                return None

            event_id = response.json().get("id")
            logger.info(f"✅ Google Calendar event {op.value}d: {event_id}")
            return event_id

        except Exception as e:
            logger.error(f"❌ Error syncing calendar event: {str(e)}")
            return None
