"""
Automated status transitions for appointments
Runs the status sweep across every professional's calendar
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..domain.scheduling.errors import LockTimeout
from ..domain.scheduling.repository import SqlAppointmentStore, SqlBlockedSlotStore, SqlDirectory
from ..domain.scheduling.service import BookingService

logger = logging.getLogger(__name__)


def update_appointment_statuses(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Mark past appointments as completed for all professionals
    Should be run as a scheduled job (see worker.py)

    Returns:
        dict: Summary of status changes made
    """
    summary = {"professionals": 0, "completed": 0, "skipped": 0}

    directory = SqlDirectory(db)
    service = BookingService(
        SqlAppointmentStore(db),
        SqlBlockedSlotStore(db),
        directory=directory,
    )

    for professional_id in directory.professional_ids():
        summary["professionals"] += 1
        try:
            flipped = service.sweep_statuses(professional_id, now)
        except LockTimeout as e:
            # Picked up again on the next run
            logger.warning(f"⚠️ Status sweep skipped for professional {professional_id}: {e}")
            summary["skipped"] += 1
            continue
        summary["completed"] += len(flipped)

    logger.info(
        f"📊 Status automation complete: {summary['completed']} appointment(s) completed "
        f"across {summary['professionals']} professional(s)"
    )
    return summary
