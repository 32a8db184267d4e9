from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class UserRole(enum.Enum):
    ADMIN = "admin"
    THERAPIST = "therapist"
    COMPANY_USER = "company_user"


class SlotStatus(enum.Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    BOOKED = "booked"
    CANCELLED = "cancelled"


class AppointmentStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class NotificationType(enum.Enum):
    APPOINTMENT_REQUESTED = "appointment_requested"
    APPOINTMENT_APPROVED = "appointment_approved"
    APPOINTMENT_REJECTED = "appointment_rejected"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    REMINDER = "reminder"


class User(Base):
    """
    Application account.
    - email is unique and stored lower-case
    - password_hash with bcrypt (passlib)
    - company_id only for company users
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False)
    company_id: Mapped[str | None] = mapped_column(ForeignKey("companies.id"), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    must_change_password: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    company: Mapped["Company"] = relationship(back_populates="users")
    therapist: Mapped["Therapist"] = relationship(back_populates="user", uselist=False)

    def __repr__(self) -> str:
        return f"User({self.email}, {self.role.value})"


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    contract_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    contract_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    users: Mapped[list["User"]] = relationship(back_populates="company")
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="company")

    def __repr__(self) -> str:
        return f"Company({self.name})"


class Therapist(Base):
    __tablename__ = "therapists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    license_number: Mapped[str | None] = mapped_column(String(80), nullable=True)
    specialties: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    user: Mapped["User"] = relationship(back_populates="therapist")
    slots: Mapped[list["AvailableSlot"]] = relationship(back_populates="therapist")


class ServiceMenu(Base):
    __tablename__ = "service_menus"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)


class Symptom(Base):
    __tablename__ = "symptoms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class AvailableSlot(Base):
    __tablename__ = "available_slots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    therapist_id: Mapped[str] = mapped_column(ForeignKey("therapists.id"), nullable=False)
    service_menu_id: Mapped[str] = mapped_column(ForeignKey("service_menus.id"), nullable=False)
    # NULL: open to every company
    company_id: Mapped[str | None] = mapped_column(ForeignKey("companies.id"), nullable=True)

    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[SlotStatus] = mapped_column(Enum(SlotStatus), default=SlotStatus.AVAILABLE, nullable=False)
    auto_delete_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    therapist: Mapped["Therapist"] = relationship(back_populates="slots")
    service_menu: Mapped["ServiceMenu"] = relationship()
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="slot")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # One live claim per slot; rejected/cancelled rows do not block a new booking
        Index(
            "uq_appointments_active_slot",
            "slot_id",
            unique=True,
            sqlite_where=text("status IN ('PENDING', 'APPROVED', 'COMPLETED')"),
            postgresql_where=text("status IN ('PENDING', 'APPROVED', 'COMPLETED')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    slot_id: Mapped[str] = mapped_column(ForeignKey("available_slots.id"), nullable=False)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False)
    requested_by: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)

    employee_name: Mapped[str] = mapped_column(String(120), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(60), nullable=False)
    symptoms: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus), default=AppointmentStatus.PENDING, nullable=False
    )
    rejected_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    slot: Mapped["AvailableSlot"] = relationship(back_populates="appointments")
    company: Mapped["Company"] = relationship(back_populates="appointments")
    requester: Mapped["User"] = relationship(foreign_keys=[requested_by])
    treatment_record: Mapped["TreatmentRecord"] = relationship(back_populates="appointment", uselist=False)


class TreatmentRecord(Base):
    __tablename__ = "treatment_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    appointment_id: Mapped[str] = mapped_column(ForeignKey("appointments.id"), unique=True, nullable=False)
    therapist_id: Mapped[str] = mapped_column(ForeignKey("therapists.id"), nullable=False)

    treatment_content: Mapped[str] = mapped_column(Text, nullable=False)
    patient_condition: Mapped[str] = mapped_column(Text, nullable=False)
    improvement_level: Mapped[int] = mapped_column(Integer, nullable=False)    # 1..5
    satisfaction_level: Mapped[int] = mapped_column(Integer, nullable=False)   # 1..5
    actual_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    next_recommendation: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_diagram_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    admin_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    appointment: Mapped["Appointment"] = relationship(back_populates="treatment_record")
    symptom_links: Mapped[list["TreatmentSymptom"]] = relationship(
        back_populates="treatment_record", cascade="all, delete-orphan"
    )


class TreatmentSymptom(Base):
    __tablename__ = "treatment_symptoms"
    __table_args__ = (
        UniqueConstraint("treatment_record_id", "symptom_id", name="uq_treatment_symptom"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    treatment_record_id: Mapped[str] = mapped_column(ForeignKey("treatment_records.id"), nullable=False)
    symptom_id: Mapped[str] = mapped_column(ForeignKey("symptoms.id"), nullable=False)

    treatment_record: Mapped["TreatmentRecord"] = relationship(back_populates="symptom_links")
    symptom: Mapped["Symptom"] = relationship()


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    # optional: notification about an appointment
    appointment_id: Mapped[str | None] = mapped_column(ForeignKey("appointments.id"), nullable=True)
