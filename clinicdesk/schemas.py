# clinicdesk/schemas.py
from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional, Dict, Any, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator, model_validator

from .models import (
    UserRole, MemberRole, ClientStatus, AppointmentStatus, MeetingType,
    InvoiceStatus, PlanType, SubscriptionStatus, NotificationType,
)


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


def reject_nulls(model: BaseModel, fields) -> None:
    """Optional on update means "may be omitted", not "may be cleared"."""
    for field in fields:
        if field in model.model_fields_set and getattr(model, field) is None:
            raise ValueError(f"{field} cannot be null")


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    database: str
    timestamp: datetime


# --- User / Auth Schemas ---
class UserBase(BaseSchema):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if not any(char.isdigit() for char in v):
            raise ValueError('Password must contain at least one digit')
        if not any(char.isalpha() for char in v):
            raise ValueError('Password must contain at least one letter')
        return v


class UserResponse(UserBase):
    id: int
    role: UserRole
    is_active: bool
    is_restricted: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    expires_in: int
    user: UserResponse


# --- Clinic Schemas ---
class ClinicPermissions(BaseSchema):
    clinician_dashboard: bool = True
    clinician_permissions: bool = False
    clinician_ai: bool = True
    clinician_clients: bool = True
    clinician_clinicians: bool = True
    clinician_invoices: bool = True
    clinician_sessions: bool = True
    clinician_forms: bool = True
    clinician_money: bool = True
    clinician_subscription: bool = False
    clinician_integrations: bool = False


class ClinicCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=150)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None


class ClinicUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None


class ClinicResponse(ClinicCreate):
    id: int
    owner_id: int
    permissions: Optional[Dict[str, bool]] = None
    created_at: Optional[datetime] = None


class MemberCreate(BaseSchema):
    """Adds an existing user to the clinic, looked up by username or email."""
    identifier: str = Field(..., min_length=3)
    role: MemberRole = MemberRole.clinician


class MemberResponse(BaseSchema):
    id: int
    clinic_id: int
    user_id: int
    role: MemberRole
    created_at: Optional[datetime] = None
    user: Optional[UserResponse] = None


# --- Client Schemas ---
class ClientBase(BaseSchema):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone_number: Optional[str] = Field(None, max_length=30)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    address: Optional[Dict[str, Any]] = None
    insurance_provider: Optional[str] = Field(None, max_length=100)
    insurance_number: Optional[str] = Field(None, max_length=100)
    note: Optional[str] = None
    status: ClientStatus = ClientStatus.active
    assigned_clinician_id: Optional[int] = None


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseSchema):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=30)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    address: Optional[Dict[str, Any]] = None
    insurance_provider: Optional[str] = Field(None, max_length=100)
    insurance_number: Optional[str] = Field(None, max_length=100)
    note: Optional[str] = None
    status: Optional[ClientStatus] = None
    assigned_clinician_id: Optional[int] = None


class ClientResponse(ClientBase):
    id: int
    clinic_id: int
    added_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClientListResponse(BaseModel):
    items: List[ClientResponse]
    total: int
    page: int
    limit: int


class ClientNoteCreate(BaseSchema):
    note: str = Field(..., min_length=1)


class ClientNoteResponse(ClientNoteCreate):
    id: int
    client_id: int
    author_id: Optional[int] = None
    created_at: Optional[datetime] = None


# --- Session (service type) Schemas ---
class SessionBase(BaseSchema):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    duration: int = Field(..., gt=0, description="Length in minutes")
    price: Decimal = Field(Decimal("0"), ge=0)
    color: Optional[str] = Field(None, max_length=20)
    reminders: Optional[List[int]] = None
    reminder_method: str = "notification"


class SessionCreate(SessionBase):
    reminder_method: Literal["notification", "email"] = "notification"


class SessionUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    duration: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, ge=0)
    color: Optional[str] = Field(None, max_length=20)
    reminders: Optional[List[int]] = None
    reminder_method: Optional[Literal["notification", "email"]] = None


class SessionResponse(SessionBase):
    id: int
    clinic_id: int
    price: float
    created_at: Optional[datetime] = None


# --- Appointment Schemas ---
class AppointmentCreate(BaseSchema):
    client_id: int
    session_id: int
    clinician_id: Optional[int] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: AppointmentStatus = AppointmentStatus.pending
    meeting_type: MeetingType = MeetingType.in_person
    note: Optional[str] = None

    @model_validator(mode='after')
    def check_times(self):
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError('end_time must be after start_time')
        return self


class AppointmentUpdate(BaseSchema):
    clinician_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    meeting_type: Optional[MeetingType] = None
    note: Optional[str] = None

    @model_validator(mode='after')
    def check_required_fields(self):
        reject_nulls(self, ("start_time", "end_time", "status"))
        return self


class AppointmentResponse(BaseSchema):
    id: int
    clinic_id: int
    client_id: int
    session_id: int
    clinician_id: Optional[int] = None
    invoice_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    meeting_type: Optional[MeetingType] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None


# --- Invoice Schemas ---
class InvoiceItem(BaseSchema):
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    total: Decimal = Field(..., ge=0)


class InvoiceCreate(BaseSchema):
    client_id: int
    items: List[InvoiceItem] = Field(..., min_length=1)
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)
    issue_date: Optional[date] = None
    due_date: date
    notes: Optional[str] = None
    appointment_ids: List[int] = Field(default_factory=list)
    status: Literal["draft", "pending"] = "draft"


class InvoiceUpdate(BaseSchema):
    items: Optional[List[InvoiceItem]] = Field(None, min_length=1)
    subtotal: Optional[Decimal] = Field(None, ge=0)
    tax: Optional[Decimal] = Field(None, ge=0)
    total: Optional[Decimal] = Field(None, ge=0)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[InvoiceStatus] = None

    @model_validator(mode='after')
    def check_required_fields(self):
        reject_nulls(self, ("items", "subtotal", "tax", "total", "issue_date", "due_date", "status"))
        return self


class InvoiceItemResponse(BaseModel):
    description: str
    quantity: float
    unit_price: float
    total: float


class InvoiceResponse(BaseSchema):
    id: int
    clinic_id: int
    client_id: int
    invoice_number: Optional[str] = None
    items: List[InvoiceItemResponse]
    subtotal: float
    tax: float
    total: float
    notes: Optional[str] = None
    status: InvoiceStatus
    issue_date: date
    due_date: date
    public_token: str
    payment_intent_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class InvoiceListResponse(BaseModel):
    items: List[InvoiceResponse]
    total: int
    page: int
    limit: int


class InvoiceStatsResponse(BaseModel):
    monthly_sales: float
    due_amount: float
    overdue_amount: float
    paid_count: int
    pending_count: int
    overdue_count: int


class PublicInvoiceResponse(BaseModel):
    invoice_number: Optional[str] = None
    clinic_name: str
    client_name: str
    items: List[InvoiceItemResponse]
    subtotal: float
    tax: float
    total: float
    currency: str
    status: InvoiceStatus
    issue_date: date
    due_date: date
    paid_at: Optional[datetime] = None


class SendInvoiceEmailResponse(BaseModel):
    message: str
    invoice_link: str
    status: InvoiceStatus


class PaymentIntentResponse(BaseModel):
    client_secret: Optional[str] = None
    payment_intent_id: str
    amount: int
    currency: str


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


# --- Plan Schemas ---
class PlanFeatures(BaseSchema):
    clients: bool = True
    appointments: bool = True
    notes: bool = True
    assessments: bool = True
    integrations: bool = False
    advanced_reporting: bool = False
    priority_support: bool = False
    custom_branding: bool = False


class PlanCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=100)
    type: PlanType
    description: Optional[str] = None
    price: Decimal
    client_limit: int
    clinician_limit: int = 0
    features: PlanFeatures = Field(default_factory=PlanFeatures)
    is_active: bool = True


class PlanUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[Decimal] = None
    client_limit: Optional[int] = None
    clinician_limit: Optional[int] = None
    features: Optional[PlanFeatures] = None
    is_active: Optional[bool] = None


class PlanResponse(BaseSchema):
    id: int
    name: str
    type: PlanType
    description: Optional[str] = None
    price: float
    client_limit: int
    clinician_limit: int
    features: Dict[str, bool]
    is_active: bool
    created_at: Optional[datetime] = None


class SeedPlanResult(BaseModel):
    type: PlanType
    success: bool
    created: bool = False
    error: Optional[str] = None


class SeedPlansResponse(BaseModel):
    created: int
    existing: int
    failed: int
    results: List[SeedPlanResult]


# --- Subscription Schemas ---
class SubscriptionCreate(BaseSchema):
    clinic_id: int
    plan_id: int
    status: SubscriptionStatus = SubscriptionStatus.active
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None


class SubscriptionUpdate(BaseSchema):
    plan_id: Optional[int] = None
    status: Optional[SubscriptionStatus] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class SubscriptionResponse(BaseSchema):
    id: int
    clinic_id: int
    plan_id: int
    status: SubscriptionStatus
    plan: PlanResponse
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class SubscriptionListResponse(BaseModel):
    items: List[SubscriptionResponse]
    total: int
    page: int
    limit: int


class UpgradeRequest(BaseModel):
    plan_type: PlanType


class StartTrialRequest(BaseModel):
    duration_days: Optional[int] = Field(None, gt=0, le=90)


class LimitCheck(BaseModel):
    can_add: bool
    current_count: int
    limit: int
    is_unlimited: bool


class PlanSummary(BaseModel):
    name: str
    type: PlanType
    price: float
    features: Dict[str, bool]


class SubscriptionSummary(BaseModel):
    status: SubscriptionStatus
    trial_end: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class UsageStatsResponse(BaseModel):
    clients: LimitCheck
    clinicians: LimitCheck
    plan: PlanSummary
    subscription: SubscriptionSummary


class TrialEligibilityResponse(BaseModel):
    eligible: bool
    reason: Optional[str] = None


class TrialStatusResponse(BaseModel):
    is_trialing: bool
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    days_remaining: int
    is_expired: bool


class TrialProcessResult(BaseModel):
    success: bool
    clinic_id: int
    clinic_name: Optional[str] = None
    previous_plan: Optional[str] = None
    new_plan: Optional[str] = None
    error: Optional[str] = None


class TrialProcessResponse(BaseModel):
    processed: int
    successful: int
    failed: int
    results: List[TrialProcessResult]


# --- Notification Schemas ---
class NotificationCreate(BaseSchema):
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    type: NotificationType = NotificationType.system
    data: Optional[Dict[str, Any]] = None
    user_id: Optional[int] = None


class NotificationResponse(BaseSchema):
    id: int
    user_id: Optional[int] = None
    clinic_id: Optional[int] = None
    title: str
    message: str
    type: NotificationType
    data: Optional[Dict[str, Any]] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]
    total: int
    unread: int


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int


# --- Report Schemas ---
class SubscriptionOverview(BaseModel):
    total_clinics: int
    active_subscriptions: int
    total_mrr: float
    by_status: Dict[str, int]
    by_plan: Dict[str, int]


class ClinicUsage(BaseModel):
    clinic_id: int
    clinic_name: str
    plan_type: Optional[str] = None
    client_count: int
    client_limit: Union[int, str]
    usage_percentage: int
    is_at_limit: bool
    is_near_limit: bool


class ClientUsageSummary(BaseModel):
    total_clients: int
    clinics_at_limit: int
    clinics_near_limit: int
    average_clients_per_clinic: float


class ClientUsageReport(BaseModel):
    clinics: List[ClinicUsage]
    summary: ClientUsageSummary


class ActiveTrial(BaseModel):
    clinic_id: int
    clinic_name: str
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    days_remaining: int
    days_used: int
    total_trial_days: int
    is_expiring_soon: bool
    is_expired: bool


class TrialReport(BaseModel):
    active_trials: List[ActiveTrial]
    total_active: int
    expiring_soon: int
    expired: int
    trials_started: int
    conversions: int
    conversion_rate: int


class SubscriptionChange(BaseModel):
    clinic_id: int
    clinic_name: str
    plan_type: str
    status: SubscriptionStatus
    changed_at: Optional[datetime] = None


class RevenueReport(BaseModel):
    period_start: datetime
    period_end: datetime
    mrr_by_plan: Dict[str, float]
    total_mrr: float
    new_subscriptions: int
    cancelled_subscriptions: int
    net_growth: int
    recent_changes: List[SubscriptionChange]


class SystemHealthReport(BaseModel):
    total_users: int
    active_users: int
    restricted_users: int
    total_clinics: int
    total_clients: int
    new_users_7d: int
    new_clinics_7d: int
    new_clients_7d: int
    appointments_7d: int
    past_due_subscriptions: int
    cancelled_subscriptions: int
    user_activation_rate: int


class DashboardSummary(BaseModel):
    overview: SubscriptionOverview
    client_usage: ClientUsageSummary
    trials: TrialReport
    system_health: SystemHealthReport
    health_score: int
    generated_at: datetime


# --- Clinic Dashboard Schemas ---
class DashboardQuickStats(BaseModel):
    today_appointments: int
    upcoming_appointments: int
    total_clients: int
    total_clinicians: int


class DashboardAppointmentSummary(BaseModel):
    total_appointments: int
    completed_appointments: int
    pending_appointments: int
    cancelled_appointments: int
    upcoming_appointments: int
    today_appointments: int
    completion_rate: int
    total_clients: int
    active_clients: int
    new_clients_this_month: int
    total_clinicians: int


class DashboardFinancials(BaseModel):
    total_revenue: float
    pending_revenue: float
    previous_revenue: float
    revenue_growth: int
    average_appointment_value: float


class RecentAppointment(BaseModel):
    id: int
    client_name: str
    session_name: str
    clinician_name: Optional[str] = None
    start_time: datetime
    status: AppointmentStatus
    price: float


class DashboardSubscription(BaseModel):
    plan_name: str
    status: SubscriptionStatus
    client_limit: int
    client_usage: int
    usage_percentage: int


class DateRange(BaseModel):
    start: datetime
    end: datetime


class ClinicDashboardOverview(BaseModel):
    summary: DashboardAppointmentSummary
    financial: DashboardFinancials
    recent_appointments: List[RecentAppointment]
    subscription: DashboardSubscription
    date_range: DateRange


# --- AI Assistant Schemas ---
class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatContext(BaseModel):
    client_id: Optional[int] = None
    appointment_id: Optional[int] = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    context: Optional[ChatContext] = None


class ChatResponse(BaseModel):
    message: str
    conversation_history: List[ChatMessage]


class DraftEmailRequest(BaseModel):
    client_id: int
    purpose: Literal["followup", "reminder", "welcome", "assessment", "custom"]
    tone: str = "professional"
    custom_context: Optional[str] = None


class DraftEmailResponse(BaseModel):
    subject: str
    body: str
    client_name: str
    client_email: str


class SummarizeScheduleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day: Optional[date] = Field(None, alias="date")
    clinic_member_id: Optional[int] = None


class ScheduleEntry(BaseModel):
    time: datetime
    client_name: str
    session_type: str
    duration: int
    status: AppointmentStatus


class SummarizeScheduleResponse(BaseModel):
    summary: str
    appointments: List[ScheduleEntry]
    total_appointments: int


class DraftItem(BaseModel):
    description: str
    amount: Decimal = Field(..., ge=0)


class InvoiceDraftRequest(BaseModel):
    client_id: int
    appointment_ids: List[int] = Field(default_factory=list)
    custom_items: List[DraftItem] = Field(default_factory=list)


class InvoiceDraftResponse(BaseModel):
    client_id: int
    client_name: str
    items: List[Dict[str, Any]]
    total_amount: float
    suggested_description: str
    due_date: date


class SuggestionsRequest(BaseModel):
    context: Literal["dashboard", "client", "appointment", "invoice"] = "dashboard"
    context_id: Optional[int] = None


class SuggestionsResponse(BaseModel):
    suggestions: List[str]


# --- Payment webhook ---
class WebhookAck(BaseModel):
    received: bool
    event_type: Optional[str] = None
