# clinicdesk/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, JSON, Numeric, Index,
    UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


class UserRole(str, enum.Enum):
    super_admin = "super_admin"
    admin = "admin"
    user = "user"


class MemberRole(str, enum.Enum):
    admin = "admin"
    clinician = "clinician"


class ClientStatus(str, enum.Enum):
    active = "active"
    pending = "pending"
    inactive = "inactive"


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"
    failed = "failed"


class MeetingType(str, enum.Enum):
    in_person = "in_person"
    zoom = "zoom"


class InvoiceStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"


class PlanType(str, enum.Enum):
    free = "free"
    professional = "professional"
    enterprise = "enterprise"


class SubscriptionStatus(str, enum.Enum):
    active = "active"
    trialing = "trialing"
    past_due = "past_due"
    cancelled = "cancelled"
    inactive = "inactive"


class NotificationType(str, enum.Enum):
    appointment = "appointment"
    invoice = "invoice"
    subscription = "subscription"
    system = "system"
    reminder = "reminder"
    message = "message"


# Rights a clinician gets unless the clinic overrides them
DEFAULT_CLINIC_PERMISSIONS = {
    "clinician_dashboard": True,
    "clinician_permissions": False,
    "clinician_ai": True,
    "clinician_clients": True,
    "clinician_clinicians": True,
    "clinician_invoices": True,
    "clinician_sessions": True,
    "clinician_forms": True,
    "clinician_money": True,
    "clinician_subscription": False,
    "clinician_integrations": False,
}


class User(Base):
    """Login identity; platform role gates the admin surfaces."""
    __tablename__ = "users"
    __table_args__ = (
        Index('idx_users_role_active', 'role', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLAlchemyEnum(UserRole, name='user_role'), default=UserRole.user, nullable=False)

    is_active = Column(Boolean, default=True)
    is_restricted = Column(Boolean, default=False)
    last_login = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    owned_clinics = relationship("Clinic", back_populates="owner")
    memberships = relationship("ClinicMember", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.username


class Clinic(Base):
    """Tenant organisation."""
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(30), nullable=True)
    address = Column(Text, nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    permissions = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    owner = relationship("User", back_populates="owned_clinics")
    members = relationship("ClinicMember", back_populates="clinic", cascade="all, delete-orphan")
    clients = relationship("Client", back_populates="clinic", cascade="all, delete-orphan")
    sessions = relationship("ClinicSession", back_populates="clinic", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="clinic")
    invoices = relationship("Invoice", back_populates="clinic")
    subscription = relationship("Subscription", back_populates="clinic", uselist=False, cascade="all, delete-orphan")


class ClinicMember(Base):
    __tablename__ = "clinic_members"
    __table_args__ = (
        UniqueConstraint('clinic_id', 'user_id', name='uq_clinic_members_clinic_user'),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(SQLAlchemyEnum(MemberRole, name='member_role'), default=MemberRole.clinician, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    clinic = relationship("Clinic", back_populates="members")
    user = relationship("User", back_populates="memberships")
    assigned_clients = relationship("Client", back_populates="assigned_clinician")
    appointments = relationship("Appointment", back_populates="clinician")


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (
        UniqueConstraint('clinic_id', 'email', name='uq_clients_clinic_email'),
        Index('idx_clients_clinic_status', 'clinic_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone_number = Column(String(30), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)
    address = Column(JSON, nullable=True)
    insurance_provider = Column(String(100), nullable=True)
    insurance_number = Column(String(100), nullable=True)
    note = Column(Text, nullable=True)
    status = Column(SQLAlchemyEnum(ClientStatus, name='client_status'), default=ClientStatus.active, nullable=False)
    assigned_clinician_id = Column(Integer, ForeignKey("clinic_members.id"), nullable=True)
    added_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    clinic = relationship("Clinic", back_populates="clients")
    assigned_clinician = relationship("ClinicMember", back_populates="assigned_clients")
    notes = relationship("ClientNote", back_populates="client", cascade="all, delete-orphan",
                         order_by="desc(ClientNote.created_at)")
    appointments = relationship("Appointment", back_populates="client", cascade="all, delete-orphan")
    invoices = relationship("Invoice", back_populates="client")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ClientNote(Base):
    __tablename__ = "client_notes"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    note = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", back_populates="notes")


class ClinicSession(Base):
    """A bookable service offering (e.g. a 50 minute therapy session)."""
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Numeric(10, 2), nullable=False, default=0)
    color = Column(String(20), nullable=True)
    reminders = Column(JSON, nullable=True)  # minutes before start
    reminder_method = Column(String(20), default="notification")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    clinic = relationship("Clinic", back_populates="sessions")
    appointments = relationship("Appointment", back_populates="session")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_clinician_start', 'clinician_id', 'start_time'),
        Index('idx_appointments_clinic_start', 'clinic_id', 'start_time'),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id"), nullable=False)
    clinician_id = Column(Integer, ForeignKey("clinic_members.id"), nullable=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)
    added_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(SQLAlchemyEnum(AppointmentStatus, name='appointment_status'), default=AppointmentStatus.pending, nullable=False)
    meeting_type = Column(SQLAlchemyEnum(MeetingType, name='meeting_type'), default=MeetingType.in_person)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    clinic = relationship("Clinic", back_populates="appointments")
    client = relationship("Client", back_populates="appointments")
    session = relationship("ClinicSession", back_populates="appointments")
    clinician = relationship("ClinicMember", back_populates="appointments")
    invoice = relationship("Invoice", back_populates="appointments")


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        Index('idx_invoices_clinic_status', 'clinic_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    invoice_number = Column(String(40), nullable=True)

    items = Column(JSON, nullable=False, default=list)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    status = Column(SQLAlchemyEnum(InvoiceStatus, name='invoice_status'), default=InvoiceStatus.draft, nullable=False)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    public_token = Column(String(64), unique=True, index=True, nullable=False)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    clinic = relationship("Clinic", back_populates="invoices")
    client = relationship("Client", back_populates="invoices")
    appointments = relationship("Appointment", back_populates="invoice")


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(SQLAlchemyEnum(PlanType, name='plan_type'), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    client_limit = Column(Integer, nullable=False, default=0)  # 0 = unlimited
    clinician_limit = Column(Integer, nullable=False, default=0)  # 0 = unlimited
    features = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    subscriptions = relationship("Subscription", back_populates="plan")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index('idx_subscriptions_status_trial_end', 'status', 'trial_end'),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), unique=True, nullable=False)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False)
    status = Column(SQLAlchemyEnum(SubscriptionStatus, name='subscription_status'), default=SubscriptionStatus.active, nullable=False)

    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    trial_start = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    clinic = relationship("Clinic", back_populates="subscription")
    plan = relationship("Plan", back_populates="subscriptions")


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index('idx_notifications_user_read', 'user_id', 'is_read'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(SQLAlchemyEnum(NotificationType, name='notification_type'), default=NotificationType.system, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="notifications")
