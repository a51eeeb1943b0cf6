"""
Appointment side effects: email and automation webhook.

Services hand committed appointments to an AppointmentNotifier. Delivery runs
later (FastAPI BackgroundTasks) and every failure is logged, never raised.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .email_service import (
    send_appointment_cancellation_email,
    send_appointment_confirmation_email,
    send_appointment_rescheduled_email,
)
from .webhooks import notify_automation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppointmentNotice:
    """Snapshot of an appointment taken before the request session closes"""

    appointment_id: int
    patient_email: Optional[str]
    patient_name: Optional[str]
    doctor_email: Optional[str]
    doctor_name: Optional[str]
    start_time: datetime
    end_time: datetime
    status: str
    reason: Optional[str] = None
    previous_start_time: Optional[datetime] = None

    def to_payload(self) -> dict:
        return {
            "appointmentId": self.appointment_id,
            "patientEmail": self.patient_email,
            "doctorEmail": self.doctor_email,
            "doctorName": self.doctor_name,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "status": self.status,
            "reason": self.reason,
            "previousStartTime": self.previous_start_time.isoformat() if self.previous_start_time else None,
        }


def build_notice(appointment, reason: Optional[str] = None, previous_start_time: Optional[datetime] = None):
    patient = appointment.patient
    doctor_user = appointment.doctor.user if appointment.doctor else None
    return AppointmentNotice(
        appointment_id=appointment.id,
        patient_email=patient.email if patient else None,
        patient_name=patient.full_name if patient else None,
        doctor_email=doctor_user.email if doctor_user else None,
        doctor_name=f"Dr. {doctor_user.full_name}" if doctor_user and doctor_user.full_name else "your doctor",
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        status=appointment.status,
        reason=reason,
        previous_start_time=previous_start_time,
    )


async def _run_side_effect(name: str, notice: AppointmentNotice, coro) -> None:
    try:
        result = await coro
        if result and not result.get("success"):
            logger.warning(f"⚠️ {name} for appointment {notice.appointment_id} failed: {result.get('error')}")
    except Exception as e:
        logger.error(f"❌ {name} for appointment {notice.appointment_id} raised: {e}")


async def deliver_booked(notice: AppointmentNotice) -> None:
    await _run_side_effect("Confirmation email", notice, send_appointment_confirmation_email(notice))
    await _run_side_effect("Webhook appointment.booked", notice, notify_automation("appointment.booked", notice.to_payload()))


async def deliver_cancelled(notice: AppointmentNotice) -> None:
    await _run_side_effect("Cancellation email", notice, send_appointment_cancellation_email(notice))
    await _run_side_effect(
        "Webhook appointment.cancelled", notice, notify_automation("appointment.cancelled", notice.to_payload())
    )


async def deliver_rescheduled(notice: AppointmentNotice) -> None:
    await _run_side_effect("Reschedule email", notice, send_appointment_rescheduled_email(notice))
    await _run_side_effect(
        "Webhook appointment.rescheduled", notice, notify_automation("appointment.rescheduled", notice.to_payload())
    )


class AppointmentNotifier:
    """Queues appointment notifications on FastAPI BackgroundTasks"""

    def __init__(self, background_tasks):
        self.background_tasks = background_tasks

    def booked(self, appointment) -> None:
        self.background_tasks.add_task(deliver_booked, build_notice(appointment))

    def cancelled(self, appointment, reason: Optional[str] = None) -> None:
        self.background_tasks.add_task(deliver_cancelled, build_notice(appointment, reason=reason))

    def rescheduled(self, appointment, previous_start_time: Optional[datetime] = None) -> None:
        self.background_tasks.add_task(
            deliver_rescheduled, build_notice(appointment, previous_start_time=previous_start_time)
        )
