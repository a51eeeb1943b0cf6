"""
Appointment rules that do not touch the database:
- the status state machine
- role-based cancellation / reschedule policy
- refund eligibility on cancellation
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ... import config
from ...errors import ValidationError
from ...models import AppointmentStatus, Role
from ..scheduling.time_calculator import hours_until

TERMINAL_MESSAGES = {
    AppointmentStatus.CANCELLED: "Cannot update a cancelled appointment.",
    AppointmentStatus.COMPLETED: "Cannot update a completed appointment.",
    AppointmentStatus.NO_SHOW: "Cannot update a no-show appointment.",
}

# Statuses that count as "the patient is expected to show up"
ATTENDABLE_STATUSES = (AppointmentStatus.CONFIRMED, AppointmentStatus.BOOKED)


def assert_valid_status_transition(
    current_status: str,
    next_status: str,
    appointment_start: datetime,
    appointment_end: datetime,
    now: datetime,
) -> None:
    """Raise ValidationError unless current_status -> next_status is allowed at `now`"""
    if current_status in TERMINAL_MESSAGES:
        raise ValidationError(TERMINAL_MESSAGES[current_status])

    if current_status == next_status:
        return

    if next_status == AppointmentStatus.CONFIRMED:
        if now > appointment_end:
            raise ValidationError("Cannot confirm a past appointment.")
        return

    if next_status == AppointmentStatus.COMPLETED:
        if current_status not in ATTENDABLE_STATUSES:
            raise ValidationError("Cannot complete an unconfirmed appointment.")
        if now < appointment_start:
            raise ValidationError("Cannot complete an appointment that hasn't started.")
        return

    if next_status == AppointmentStatus.CANCELLED:
        return

    raise ValidationError(f"Invalid status transition from {current_status} to {next_status}.")


# ----------------------------------------------------------------------
# Role policies
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class CancellationPolicy:
    """What a role may do to an existing appointment"""

    allowed: bool
    can_cancel_anytime: bool
    min_notice_hours: int = 0
    # "patient" / "doctor": the caller must own the appointment in that capacity
    ownership: Optional[str] = None


def build_cancellation_policies(
    patient_min_hours_before: int = config.PATIENT_MIN_HOURS_BEFORE,
    doctor_can_cancel_anytime: bool = config.DOCTOR_CAN_CANCEL_ANYTIME,
    admin_can_cancel_anytime: bool = config.ADMIN_CAN_CANCEL_ANYTIME,
) -> dict[str, CancellationPolicy]:
    return {
        Role.ADMIN: CancellationPolicy(allowed=admin_can_cancel_anytime, can_cancel_anytime=True),
        Role.DOCTOR: CancellationPolicy(
            allowed=doctor_can_cancel_anytime, can_cancel_anytime=True, ownership="doctor"
        ),
        Role.PATIENT: CancellationPolicy(
            allowed=True,
            can_cancel_anytime=False,
            min_notice_hours=patient_min_hours_before,
            ownership="patient",
        ),
    }


CANCELLATION_POLICIES = build_cancellation_policies()


def _owns(appointment, actor, ownership: Optional[str]) -> bool:
    if ownership == "patient":
        return appointment.patient_id == actor.id
    if ownership == "doctor":
        return actor.doctor_id is not None and appointment.doctor_id == actor.doctor_id
    return True


def _assert_role_may_change(
    appointment, actor, now: datetime, action: str, policies: Optional[dict]
) -> None:
    policy = (policies or CANCELLATION_POLICIES).get(actor.role)
    if policy is None:
        raise ValidationError(f"Invalid user role for {action}")
    if not policy.allowed:
        raise ValidationError(f"{actor.role.title()} {action} is not allowed")
    if not _owns(appointment, actor, policy.ownership):
        verb = "cancel" if action == "cancellation" else "reschedule"
        raise ValidationError(f"You can only {verb} your own appointments")
    if policy.can_cancel_anytime:
        return

    if appointment.start_time <= now:
        verb = "cancel" if action == "cancellation" else "reschedule"
        raise ValidationError(f"Cannot {verb} past appointments")
    if hours_until(appointment.start_time, now) < policy.min_notice_hours:
        verb = "cancelled" if action == "cancellation" else "rescheduled"
        raise ValidationError(
            f"Appointments must be {verb} at least {policy.min_notice_hours} hours in advance"
        )


def assert_can_cancel(appointment, actor, now: datetime, policies: Optional[dict] = None) -> None:
    if appointment.status == AppointmentStatus.CANCELLED:
        raise ValidationError("Appointment is already cancelled")
    if appointment.status == AppointmentStatus.COMPLETED:
        raise ValidationError("Cannot cancel a completed appointment")
    if appointment.status == AppointmentStatus.NO_SHOW:
        raise ValidationError("Cannot cancel a no-show appointment")
    _assert_role_may_change(appointment, actor, now, "cancellation", policies)


def assert_can_reschedule(appointment, actor, now: datetime, policies: Optional[dict] = None) -> None:
    if appointment.status in AppointmentStatus.TERMINAL:
        raise ValidationError(f"Cannot reschedule a {appointment.status.lower().replace('_', '-')} appointment")
    _assert_role_may_change(appointment, actor, now, "reschedule", policies)


# ----------------------------------------------------------------------
# Refunds
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class RefundDecision:
    eligible: bool
    type: str  # FULL or NONE
    reason: str


def compute_refund_decision(
    cancelled_by: str,
    cancelled_at: datetime,
    appointment_start: datetime,
    full_refund_hours: int = config.FULL_REFUND_HOURS_BEFORE,
) -> RefundDecision:
    if cancelled_by in (Role.DOCTOR, Role.ADMIN):
        return RefundDecision(True, "FULL", "Doctor or clinic cancellation: full refund per policy.")

    if cancelled_by == Role.PATIENT:
        if hours_until(appointment_start, cancelled_at) >= full_refund_hours:
            return RefundDecision(
                True, "FULL", f"Cancelled at least {full_refund_hours} hours before appointment: full refund."
            )
        return RefundDecision(
            False,
            "NONE",
            f"Cancelled less than {full_refund_hours} hours before appointment: no refund per policy.",
        )

    return RefundDecision(False, "NONE", "Unknown canceller: no refund.")
