from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Role:
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    ADMIN = "ADMIN"

    ALL = (PATIENT, DOCTOR, ADMIN)


class SlotStatus:
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"


class AppointmentStatus:
    PENDING = "PENDING"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    OVERFLOW = "OVERFLOW"  # paid after the window filled up, needs a refund

    TERMINAL = (CANCELLED, COMPLETED, NO_SHOW)


class PaymentStatus:
    UNPAID = "UNPAID"
    PAID = "PAID"


class PaymentProvider:
    STRIPE = "STRIPE"
    CASH = "CASH"
    ESEWA = "ESEWA"


class ExceptionType:
    UNAVAILABLE = "UNAVAILABLE"
    AVAILABLE = "AVAILABLE"


class ReminderType:
    TWENTY_FOUR_HOUR = "TWENTY_FOUR_HOUR"
    ONE_HOUR = "ONE_HOUR"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), default=Role.PATIENT, nullable=False)  # PATIENT, DOCTOR, ADMIN
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor_profile = relationship("Doctor", back_populates="user", uselist=False)


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    specialization = Column(String(255), nullable=True)
    # Consultation fee in major currency units; null or 0 disables paid booking
    appointment_price = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="doctor_profile")
    slot_template = relationship("SlotTemplate", back_populates="doctor", uselist=False)


class SlotTemplate(Base):
    __tablename__ = "slot_templates"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), unique=True, nullable=False)
    duration_minutes = Column(Integer, default=30, nullable=False)
    buffer_minutes = Column(Integer, default=0, nullable=False)
    advance_booking_days = Column(Integer, default=30, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor", back_populates="slot_template")


class Availability(Base):
    __tablename__ = "availabilities"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), index=True, nullable=False)
    # Full datetimes for one-time windows; only the time of day is used when recurring
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    is_recurring = Column(Boolean, default=False, nullable=False)
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday ... 6 = Saturday
    valid_from = Column(DateTime, nullable=True)
    valid_to = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor")
    slots = relationship("Slot", back_populates="availability")


class ScheduleException(Base):
    __tablename__ = "schedule_exceptions"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), index=True, nullable=True)  # null = all doctors
    date_from = Column(Date, nullable=False)
    date_to = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=True)  # HH:mm, null = full day
    end_time = Column(String(5), nullable=True)
    type = Column(String(20), default=ExceptionType.UNAVAILABLE, nullable=False)
    reason = Column(String(50), nullable=True)  # HOLIDAY, EXTRA_HOURS, ...
    label = Column(String(255), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    slots = relationship("Slot", back_populates="schedule_exception")


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        UniqueConstraint("doctor_id", "availability_id", "start_time", "end_time", name="uq_slot_window"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), index=True, nullable=False)
    availability_id = Column(
        Integer, ForeignKey("availabilities.id", ondelete="SET NULL"), index=True, nullable=True
    )
    # Set for extra-hours slots generated from an AVAILABLE exception
    schedule_exception_id = Column(
        Integer, ForeignKey("schedule_exceptions.id", ondelete="CASCADE"), index=True, nullable=True
    )
    start_time = Column(DateTime, index=True, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), default=SlotStatus.AVAILABLE, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    availability = relationship("Availability", back_populates="slots")
    schedule_exception = relationship("ScheduleException", back_populates="slots")


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        UniqueConstraint("doctor_id", "date", "start_time", "end_time", name="uq_schedule_window"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:mm
    end_time = Column(String(5), nullable=False)
    max_patients = Column(Integer, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), index=True, nullable=False)
    availability_id = Column(Integer, ForeignKey("availabilities.id", ondelete="SET NULL"), nullable=True)
    slot_id = Column(Integer, ForeignKey("slots.id", ondelete="SET NULL"), index=True, nullable=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), index=True, nullable=True)
    start_time = Column(DateTime, index=True, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), default=AppointmentStatus.PENDING, nullable=False)
    notes = Column(Text, nullable=True)
    is_archived = Column(Boolean, default=False, nullable=False)

    # Capacity-based bookings
    queue_number = Column(Integer, nullable=True)
    payment_status = Column(String(20), default=PaymentStatus.UNPAID, nullable=False)
    payment_provider = Column(String(20), nullable=True)
    payment_intent_id = Column(String(255), unique=True, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    cancelled_by = Column(String(20), nullable=True)  # PATIENT, DOCTOR, ADMIN
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("User", foreign_keys=[patient_id])
    doctor = relationship("Doctor")
    slot = relationship("Slot")
    schedule = relationship("Schedule")
    reminder = relationship("Reminder", back_populates="appointment", uselist=False)


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=False)
    reminder_type = Column(String(20), default=ReminderType.TWENTY_FOUR_HOUR, nullable=False)
    scheduled_for = Column(DateTime, index=True, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="reminder")
