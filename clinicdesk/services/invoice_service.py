# clinicdesk/services/invoice_service.py
"""
Invoices: arithmetic checks, clinic CRUD, e-mail delivery and the public
pay-by-link flow.

A paid invoice is frozen; the only way into ``paid`` is a confirmed Stripe
payment, either through the public confirm call or the payment webhook.
"""
import logging
import secrets
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List, Iterable

from fastapi import status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..config import get_settings
from ..exceptions import ApiError
from ..utils import utcnow, month_start
from .email_service import EmailService
from .notification_service import NotificationService, get_notification_template
from .payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")
STRUCTURAL_FIELDS = ("items", "subtotal", "tax", "total")


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _item_value(item, key):
    return item[key] if isinstance(item, dict) else getattr(item, key)


def validate_invoice_amounts(items: Iterable, subtotal, tax, total) -> None:
    """Raise 400 unless every line, the subtotal and the total reconcile within one cent."""
    items_sum = Decimal("0")
    for item in items:
        description = _item_value(item, "description")
        line_total = _to_decimal(_item_value(item, "total"))
        expected = _to_decimal(_item_value(item, "quantity")) * _to_decimal(_item_value(item, "unit_price"))
        if abs(expected - line_total) > AMOUNT_TOLERANCE:
            raise ApiError(status.HTTP_400_BAD_REQUEST, f"Item total mismatch for '{description}'")
        items_sum += line_total

    subtotal = _to_decimal(subtotal)
    if abs(items_sum - subtotal) > AMOUNT_TOLERANCE:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Subtotal does not match sum of item totals")
    if abs(subtotal + _to_decimal(tax) - _to_decimal(total)) > AMOUNT_TOLERANCE:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Total does not match subtotal + tax")


def to_minor_units(amount) -> int:
    return int((_to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _serialize_items(items: List[schemas.InvoiceItem]) -> List[Dict[str, Any]]:
    return [
        {
            "description": item.description,
            "quantity": float(item.quantity),
            "unit_price": float(item.unit_price),
            "total": float(item.total),
        }
        for item in items
    ]


class InvoiceService:

    def __init__(self, db: Session, gateway: Optional[PaymentGateway] = None, email: Optional[EmailService] = None):
        self.db = db
        self.gateway = gateway
        self.email = email
        self.settings = get_settings()

    # --- clinic side ---
    def _next_invoice_number(self, clinic_id: int) -> str:
        count = self.db.query(func.count(models.Invoice.id)).filter(models.Invoice.clinic_id == clinic_id).scalar()
        return f"INV-{clinic_id:04d}-{count + 1:05d}"

    def create_invoice(self, clinic_id: int, invoice: schemas.InvoiceCreate) -> models.Invoice:
        client = self.db.query(models.Client).filter(
            models.Client.id == invoice.client_id,
            models.Client.clinic_id == clinic_id,
        ).first()
        if client is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Client not found in this clinic")

        validate_invoice_amounts(invoice.items, invoice.subtotal, invoice.tax, invoice.total)

        appointments = []
        if invoice.appointment_ids:
            appointment_ids = set(invoice.appointment_ids)
            appointments = self.db.query(models.Appointment).filter(
                models.Appointment.id.in_(appointment_ids),
                models.Appointment.client_id == client.id,
                models.Appointment.clinic_id == clinic_id,
            ).all()
            if len(appointments) != len(appointment_ids):
                raise ApiError(
                    status.HTTP_400_BAD_REQUEST,
                    "One or more appointments not found or do not belong to this client"
                )
            for appointment in appointments:
                if appointment.invoice_id or appointment.status != models.AppointmentStatus.pending:
                    raise ApiError(
                        status.HTTP_400_BAD_REQUEST,
                        f"Appointment {appointment.id} is already invoiced or not in pending status"
                    )

        db_invoice = models.Invoice(
            clinic_id=clinic_id,
            client_id=client.id,
            invoice_number=self._next_invoice_number(clinic_id),
            items=_serialize_items(invoice.items),
            subtotal=invoice.subtotal,
            tax=invoice.tax,
            total=invoice.total,
            notes=invoice.notes,
            status=models.InvoiceStatus(invoice.status),
            issue_date=invoice.issue_date or date.today(),
            due_date=invoice.due_date,
            public_token=secrets.token_hex(32),
        )
        self.db.add(db_invoice)
        self.db.flush()
        for appointment in appointments:
            appointment.invoice_id = db_invoice.id
        self.db.commit()
        self.db.refresh(db_invoice)
        logger.info(f"Invoice {db_invoice.invoice_number} created for client {client.id} in clinic {clinic_id}")
        return db_invoice

    def list_invoices(self, clinic_id: int, page: int = 1, limit: int = 10,
                      status_filter: Optional[models.InvoiceStatus] = None,
                      client_id: Optional[int] = None,
                      client_name: Optional[str] = None) -> Dict[str, Any]:
        query = self.db.query(models.Invoice).filter(models.Invoice.clinic_id == clinic_id)
        if status_filter:
            query = query.filter(models.Invoice.status == status_filter)
        if client_id:
            query = query.filter(models.Invoice.client_id == client_id)
        if client_name:
            pattern = f"%{client_name}%"
            query = query.join(models.Client).filter(or_(
                models.Client.first_name.ilike(pattern),
                models.Client.last_name.ilike(pattern),
            ))
        total = query.count()
        items = (
            query.order_by(models.Invoice.created_at.desc(), models.Invoice.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    def get_invoice(self, clinic_id: int, invoice_id: int) -> models.Invoice:
        invoice = self.db.query(models.Invoice).filter(
            models.Invoice.id == invoice_id,
            models.Invoice.clinic_id == clinic_id,
        ).first()
        if invoice is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Invoice not found")
        return invoice

    def update_invoice(self, clinic_id: int, invoice_id: int, invoice_update: schemas.InvoiceUpdate) -> models.Invoice:
        invoice = self.get_invoice(clinic_id, invoice_id)
        if invoice.status == models.InvoiceStatus.paid:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Paid invoices cannot be modified")

        data = invoice_update.model_dump(exclude_unset=True)
        if data.get("status") == models.InvoiceStatus.paid:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Invoices are marked paid only by a confirmed payment")

        if any(field in data for field in STRUCTURAL_FIELDS):
            items = invoice_update.items if invoice_update.items is not None else invoice.items
            subtotal = data.get("subtotal", invoice.subtotal)
            tax = data.get("tax", invoice.tax)
            total = data.get("total", invoice.total)
            validate_invoice_amounts(items, subtotal, tax, total)
            if invoice_update.items is not None:
                data["items"] = _serialize_items(invoice_update.items)

        due_date = data.get("due_date", invoice.due_date)
        issue_date = data.get("issue_date", invoice.issue_date)
        if due_date < issue_date:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Due date cannot be before the issue date")

        for key, value in data.items():
            setattr(invoice, key, value)
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.id} updated: {sorted(data)}")
        return invoice

    def delete_invoice(self, clinic_id: int, invoice_id: int) -> None:
        invoice = self.get_invoice(clinic_id, invoice_id)
        if invoice.status == models.InvoiceStatus.paid:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Paid invoices cannot be deleted")
        for appointment in invoice.appointments:
            appointment.invoice_id = None
        self.db.delete(invoice)
        self.db.commit()
        logger.info(f"Invoice {invoice_id} deleted from clinic {clinic_id}")

    def get_invoice_stats(self, clinic_id: int) -> Dict[str, Any]:
        today = date.today()
        base = self.db.query(models.Invoice).filter(models.Invoice.clinic_id == clinic_id)

        def total_of(query):
            return float(query.with_entities(func.coalesce(func.sum(models.Invoice.total), 0)).scalar() or 0)

        paid_this_month = base.filter(
            models.Invoice.status == models.InvoiceStatus.paid,
            models.Invoice.paid_at >= month_start(),
        )
        due = base.filter(
            models.Invoice.status == models.InvoiceStatus.pending,
            models.Invoice.due_date >= today,
        )
        overdue = base.filter(or_(
            models.Invoice.status == models.InvoiceStatus.overdue,
            (models.Invoice.status == models.InvoiceStatus.pending) & (models.Invoice.due_date < today),
        ))
        return {
            "monthly_sales": total_of(paid_this_month),
            "due_amount": total_of(due),
            "overdue_amount": total_of(overdue),
            "paid_count": base.filter(models.Invoice.status == models.InvoiceStatus.paid).count(),
            "pending_count": due.count(),
            "overdue_count": overdue.count(),
        }

    def invoice_link(self, invoice: models.Invoice) -> str:
        return f"{self.settings.frontend_url}/invoice/{invoice.public_token}"

    def send_invoice_email(self, clinic_id: int, invoice_id: int) -> Dict[str, Any]:
        invoice = self.get_invoice(clinic_id, invoice_id)
        if invoice.status == models.InvoiceStatus.paid:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Invoice is already paid")
        if invoice.status == models.InvoiceStatus.cancelled:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Cannot send a cancelled invoice")
        if self.email is None:
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Email service is not available")

        link = self.invoice_link(invoice)
        self.email.send_invoice_email(
            to_email=invoice.client.email,
            client_name=invoice.client.full_name,
            clinic_name=invoice.clinic.name,
            invoice_link=link,
            total=f"{_to_decimal(invoice.total):.2f} {self.settings.invoice_currency.upper()}",
            due_date=invoice.due_date.isoformat(),
            invoice_number=invoice.invoice_number,
        )

        invoice.sent_at = utcnow()
        if invoice.status == models.InvoiceStatus.draft:
            invoice.status = models.InvoiceStatus.pending
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.id} emailed to client {invoice.client_id}")
        return {"message": "Invoice sent successfully", "invoice_link": link, "status": invoice.status}

    # --- public pay-by-link ---
    def get_invoice_by_token(self, public_token: str) -> models.Invoice:
        invoice = self.db.query(models.Invoice).filter(models.Invoice.public_token == public_token).first()
        if invoice is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Invoice not found")
        return invoice

    def get_public_invoice(self, public_token: str) -> Dict[str, Any]:
        invoice = self.get_invoice_by_token(public_token)
        return {
            "invoice_number": invoice.invoice_number,
            "clinic_name": invoice.clinic.name,
            "client_name": invoice.client.full_name,
            "items": invoice.items,
            "subtotal": invoice.subtotal,
            "tax": invoice.tax,
            "total": invoice.total,
            "currency": self.settings.invoice_currency,
            "status": invoice.status,
            "issue_date": invoice.issue_date,
            "due_date": invoice.due_date,
            "paid_at": invoice.paid_at,
        }

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Payment provider is not available")
        return self.gateway

    def create_payment_intent(self, public_token: str) -> Dict[str, Any]:
        invoice = self.get_invoice_by_token(public_token)
        if invoice.status == models.InvoiceStatus.paid:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Invoice is already paid")
        if invoice.status == models.InvoiceStatus.cancelled:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Invoice has been cancelled")

        amount = to_minor_units(invoice.total)
        if amount <= 0:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Invoice total must be greater than zero")

        intent = self._require_gateway().create_payment_intent(
            amount=amount,
            currency=self.settings.invoice_currency,
            metadata={
                "invoice_id": str(invoice.id),
                "clinic_id": str(invoice.clinic_id),
                "invoice_number": invoice.invoice_number or "",
            },
        )
        invoice.payment_intent_id = intent["id"]
        self.db.commit()
        return {
            "client_secret": intent.get("client_secret"),
            "payment_intent_id": intent["id"],
            "amount": amount,
            "currency": self.settings.invoice_currency,
        }

    def confirm_payment(self, public_token: str, payment_intent_id: str) -> models.Invoice:
        invoice = self.get_invoice_by_token(public_token)
        if invoice.status == models.InvoiceStatus.paid:
            if invoice.payment_intent_id == payment_intent_id:
                return invoice
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Invoice is already paid")
        if invoice.payment_intent_id != payment_intent_id:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Payment intent does not match this invoice")

        intent = self._require_gateway().retrieve_payment_intent(payment_intent_id)
        if intent["status"] != "succeeded":
            raise ApiError(status.HTTP_400_BAD_REQUEST, f"Payment has not succeeded (status: {intent['status']})")
        return self._mark_paid(invoice, payment_intent_id)

    def mark_paid_from_webhook(self, payment_intent: Dict[str, Any]) -> Optional[models.Invoice]:
        """Handle ``payment_intent.succeeded``; repeats for an already-paid invoice are no-ops."""
        invoice_id = (payment_intent.get("metadata") or {}).get("invoice_id")
        invoice = None
        if invoice_id:
            invoice = self.db.query(models.Invoice).filter(models.Invoice.id == int(invoice_id)).first()
        if invoice is None and payment_intent.get("id"):
            invoice = self.db.query(models.Invoice).filter(
                models.Invoice.payment_intent_id == payment_intent["id"]
            ).first()
        if invoice is None:
            logger.warning(f"Payment intent {payment_intent.get('id')} does not match any invoice")
            return None
        if invoice.status == models.InvoiceStatus.paid:
            logger.info(f"Invoice {invoice.id} already paid; webhook ignored")
            return invoice
        return self._mark_paid(invoice, payment_intent.get("id"))

    def _mark_paid(self, invoice: models.Invoice, payment_intent_id: Optional[str]) -> models.Invoice:
        invoice.status = models.InvoiceStatus.paid
        invoice.paid_at = utcnow()
        if payment_intent_id:
            invoice.payment_intent_id = payment_intent_id
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.id} marked paid (intent {payment_intent_id})")

        template = get_notification_template(models.NotificationType.invoice, "paid", float(invoice.total))
        NotificationService(self.db).notify_clinic(
            invoice.clinic_id,
            template["title"],
            f"{invoice.client.full_name} paid invoice {invoice.invoice_number}: {template['message']}",
            models.NotificationType.invoice,
            {"invoice_id": invoice.id, "client_id": invoice.client_id},
        )
        return invoice
