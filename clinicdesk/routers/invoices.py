# clinicdesk/routers/invoices.py
from fastapi import APIRouter, Depends, Query, Request, status
from typing import Optional

from .. import schemas, security, models
from ..dependencies import get_invoice_service, require_active_subscription
from ..limiter import limiter, PUBLIC_INVOICE_RATE
from ..security import ClinicContext
from ..services.invoice_service import InvoiceService

router = APIRouter(
    prefix="/invoices",
    tags=["Invoices"],
    dependencies=[Depends(security.get_current_user), Depends(require_active_subscription)],
    responses={404: {"description": "Not found"}},
)

# Pay-by-link routes for clients; no login, rate limited per address
public_router = APIRouter(
    prefix="/public/invoices",
    tags=["Public Invoices"],
    responses={404: {"description": "Not found"}},
)

require_invoices = security.require_clinic_permission("invoices")


@router.post("", response_model=schemas.InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice: schemas.InvoiceCreate,
    service: InvoiceService = Depends(get_invoice_service),
    ctx: ClinicContext = Depends(require_invoices)
):
    """
    Create an invoice. Line totals, subtotal and total must reconcile to the cent.
    """
    return service.create_invoice(ctx.clinic_id, invoice)


@router.get("", response_model=schemas.InvoiceListResponse)
def list_invoices(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[models.InvoiceStatus] = Query(None, alias="status"),
    client_id: Optional[int] = None,
    client_name: Optional[str] = None,
    service: InvoiceService = Depends(get_invoice_service),
    ctx: ClinicContext = Depends(require_invoices)
):
    return service.list_invoices(
        ctx.clinic_id, page=page, limit=limit, status_filter=status_filter,
        client_id=client_id, client_name=client_name,
    )


@router.get("/stats", response_model=schemas.InvoiceStatsResponse)
def invoice_stats(
    service: InvoiceService = Depends(get_invoice_service),
    ctx: ClinicContext = Depends(security.require_clinic_permission("money"))
):
    return service.get_invoice_stats(ctx.clinic_id)


@router.get("/{invoice_id}", response_model=schemas.InvoiceResponse)
def read_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service),
                 ctx: ClinicContext = Depends(require_invoices)):
    return service.get_invoice(ctx.clinic_id, invoice_id)


@router.put("/{invoice_id}", response_model=schemas.InvoiceResponse)
def update_invoice(
    invoice_id: int,
    invoice_update: schemas.InvoiceUpdate,
    service: InvoiceService = Depends(get_invoice_service),
    ctx: ClinicContext = Depends(require_invoices)
):
    return service.update_invoice(ctx.clinic_id, invoice_id, invoice_update)


@router.delete("/{invoice_id}", response_model=schemas.MessageResponse)
def delete_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service),
                   ctx: ClinicContext = Depends(require_invoices)):
    service.delete_invoice(ctx.clinic_id, invoice_id)
    return {"message": "Invoice deleted"}


@router.post("/{invoice_id}/send", response_model=schemas.SendInvoiceEmailResponse)
def send_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service),
                 ctx: ClinicContext = Depends(require_invoices)):
    """
    Email the client a pay-by-link for the invoice; a draft becomes pending.
    """
    return service.send_invoice_email(ctx.clinic_id, invoice_id)


# --- Public ---
@public_router.get("/{public_token}", response_model=schemas.PublicInvoiceResponse)
@limiter.limit(PUBLIC_INVOICE_RATE)
def read_public_invoice(request: Request, public_token: str, service: InvoiceService = Depends(get_invoice_service)):
    return service.get_public_invoice(public_token)


@public_router.post("/{public_token}/payment-intent", response_model=schemas.PaymentIntentResponse)
@limiter.limit(PUBLIC_INVOICE_RATE)
def create_payment_intent(request: Request, public_token: str,
                          service: InvoiceService = Depends(get_invoice_service)):
    return service.create_payment_intent(public_token)


@public_router.post("/{public_token}/confirm", response_model=schemas.PublicInvoiceResponse)
@limiter.limit(PUBLIC_INVOICE_RATE)
def confirm_payment(
    request: Request,
    public_token: str,
    payload: schemas.ConfirmPaymentRequest,
    service: InvoiceService = Depends(get_invoice_service)
):
    service.confirm_payment(public_token, payload.payment_intent_id)
    return service.get_public_invoice(public_token)
