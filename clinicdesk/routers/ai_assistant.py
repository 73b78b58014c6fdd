# clinicdesk/routers/ai_assistant.py
from fastapi import APIRouter, Depends

from .. import schemas, security
from ..dependencies import get_ai_assistant_service, require_active_subscription
from ..security import ClinicContext
from ..services.ai_assistant_service import AIAssistantService

router = APIRouter(
    prefix="/ai-assistant",
    tags=["AI Assistant"],
    dependencies=[Depends(security.get_current_user), Depends(require_active_subscription)],
)

require_ai = security.require_clinic_permission("ai")


@router.post("/chat", response_model=schemas.ChatResponse)
def chat(
    request: schemas.ChatRequest,
    service: AIAssistantService = Depends(get_ai_assistant_service),
    ctx: ClinicContext = Depends(require_ai)
):
    return service.chat(ctx.clinic_id, request)


@router.post("/draft-email", response_model=schemas.DraftEmailResponse)
def draft_email(
    request: schemas.DraftEmailRequest,
    service: AIAssistantService = Depends(get_ai_assistant_service),
    ctx: ClinicContext = Depends(require_ai)
):
    return service.draft_email(ctx.clinic_id, request)


@router.post("/summarize-schedule", response_model=schemas.SummarizeScheduleResponse)
def summarize_schedule(
    request: schemas.SummarizeScheduleRequest,
    service: AIAssistantService = Depends(get_ai_assistant_service),
    ctx: ClinicContext = Depends(require_ai)
):
    """
    Summarize one clinician's day; defaults to today and to the caller's own schedule.
    """
    member_id = request.clinic_member_id or (ctx.member.id if ctx.member else None)
    return service.summarize_schedule(ctx.clinic_id, request.day, member_id)


@router.post("/create-invoice", response_model=schemas.InvoiceDraftResponse)
def create_invoice_draft(
    request: schemas.InvoiceDraftRequest,
    service: AIAssistantService = Depends(get_ai_assistant_service),
    ctx: ClinicContext = Depends(require_ai)
):
    return service.create_invoice_draft(ctx.clinic_id, request)


@router.post("/suggestions", response_model=schemas.SuggestionsResponse)
def suggestions(
    request: schemas.SuggestionsRequest,
    service: AIAssistantService = Depends(get_ai_assistant_service),
    ctx: ClinicContext = Depends(require_ai)
):
    return {"suggestions": service.get_suggestions(ctx.clinic_id, request.context, request.context_id)}
