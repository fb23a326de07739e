"""
iCalendar export of a professional's appointments
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from dateutil import tz

from ..domain.scheduling.entities import Appointment, AppointmentStatus
from ..domain.scheduling.errors import InvalidFormat
from ..domain.scheduling.time_range import combine_date_and_time, local_timezone

logger = logging.getLogger(__name__)

PRODID = "-//Clinic Scheduler//Agenda//EN"
LOCATION = "Clinic"

ICS_STATUS = {
    AppointmentStatus.SCHEDULED: "TENTATIVE",
    AppointmentStatus.CONFIRMED: "CONFIRMED",
    AppointmentStatus.COMPLETED: "CONFIRMED",
    AppointmentStatus.CANCELLED: "CANCELLED",
    AppointmentStatus.NO_SHOW: "CANCELLED",
}


def escape_text(value: Optional[str]) -> str:
    """Escape a TEXT property value (RFC 5545, section 3.3.11)"""
    if not value:
        return ""
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace(",", "\\,").replace(";", "\\;")


def format_utc(value: datetime) -> str:
    """Format a local wall-clock or aware datetime as an ICS UTC timestamp"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=local_timezone())
    return value.astimezone(tz.UTC).strftime("%Y%m%dT%H%M%SZ")


def build_calendar_ics(
    appointments: Iterable[Appointment],
    subject_resolver: Optional[Callable[[Appointment], str]] = None,
    now: Optional[datetime] = None,
) -> str:
    """Render appointments as a VCALENDAR feed with CRLF line endings"""
    stamp = format_utc(now or datetime.now(tz.UTC))
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "CALSCALE:GREGORIAN",
        f"PRODID:{PRODID}",
        "METHOD:PUBLISH",
    ]

    for appt in appointments:
        try:
            start = combine_date_and_time(appt.date, appt.start_time)
            end = combine_date_and_time(appt.date, appt.end_time)
        except InvalidFormat as e:
            logger.warning(f"⚠️ Skipping appointment {appt.id} in ICS export: {e}")
            continue

        subject = subject_resolver(appt) if subject_resolver else appt.subject_ref
        description = [f"Status: {appt.status.value}"]
        if appt.notes:
            description.append(f"Notes: {appt.notes}")

        lines.extend(
            [
                "BEGIN:VEVENT",
                f"UID:{appt.id}",
                f"DTSTAMP:{stamp}",
                f"DTSTART:{format_utc(start)}",
                f"DTEND:{format_utc(end)}",
                f"SUMMARY:{escape_text(subject or appt.kind.value)}",
                "DESCRIPTION:" + "\\n".join(escape_text(line) for line in description),
                f"LOCATION:{escape_text(LOCATION)}",
                f"STATUS:{ICS_STATUS[appt.status]}",
                "END:VEVENT",
            ]
        )

    lines.append("END:VCALENDAR")
    return "\r\n".join(lines)
