# clinicdesk/services/plan_service.py
import logging
from decimal import Decimal
from typing import List, Optional, Dict, Any

from fastapi import status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..exceptions import ApiError

logger = logging.getLogger(__name__)


DEFAULT_PLANS = [
    {
        "name": "Free Plan",
        "type": models.PlanType.free,
        "description": "Basic features for small practices",
        "price": Decimal("0"),
        "client_limit": 10,
        "clinician_limit": 1,
        "features": {
            "clients": True,
            "appointments": True,
            "notes": True,
            "assessments": True,
            "integrations": False,
            "advanced_reporting": False,
            "priority_support": False,
            "custom_branding": False,
        },
    },
    {
        "name": "Professional Plan",
        "type": models.PlanType.professional,
        "description": "Advanced features for growing practices",
        "price": Decimal("29.99"),
        "client_limit": 100,
        "clinician_limit": 5,
        "features": {
            "clients": True,
            "appointments": True,
            "notes": True,
            "assessments": True,
            "integrations": True,
            "advanced_reporting": True,
            "priority_support": False,
            "custom_branding": False,
        },
    },
    {
        "name": "Enterprise Plan",
        "type": models.PlanType.enterprise,
        "description": "Full features for large practices",
        "price": Decimal("99.99"),
        "client_limit": 0,
        "clinician_limit": 0,
        "features": {
            "clients": True,
            "appointments": True,
            "notes": True,
            "assessments": True,
            "integrations": True,
            "advanced_reporting": True,
            "priority_support": True,
            "custom_branding": True,
        },
    },
]


def _check_non_negative(price: Optional[Decimal], client_limit: Optional[int], clinician_limit: Optional[int]):
    if price is not None and price < 0:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Plan price cannot be negative")
    if client_limit is not None and client_limit < 0:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Client limit cannot be negative")
    if clinician_limit is not None and clinician_limit < 0:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Clinician limit cannot be negative")


class PlanService:
    """Catalog of subscription plans."""

    def __init__(self, db: Session):
        self.db = db

    def create_plan(self, plan: schemas.PlanCreate) -> models.Plan:
        if self.db.query(models.Plan).filter(models.Plan.type == plan.type).first():
            raise ApiError(status.HTTP_409_CONFLICT, f"A {plan.type.value} plan already exists")
        _check_non_negative(plan.price, plan.client_limit, plan.clinician_limit)

        db_plan = models.Plan(
            name=plan.name,
            type=plan.type,
            description=plan.description,
            price=plan.price,
            client_limit=plan.client_limit,
            clinician_limit=plan.clinician_limit,
            features=plan.features.model_dump(),
            is_active=plan.is_active,
        )
        self.db.add(db_plan)
        self.db.commit()
        self.db.refresh(db_plan)
        logger.info(f"Created plan '{db_plan.name}' ({db_plan.type.value})")
        return db_plan

    def list_plans(self, include_inactive: bool = False) -> List[models.Plan]:
        query = self.db.query(models.Plan)
        if not include_inactive:
            query = query.filter(models.Plan.is_active.is_(True))
        return query.order_by(models.Plan.price.asc()).all()

    def get_plan(self, plan_id: int) -> models.Plan:
        plan = self.db.query(models.Plan).filter(models.Plan.id == plan_id).first()
        if plan is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Plan not found")
        return plan

    def get_plan_by_type(self, plan_type: models.PlanType) -> models.Plan:
        plan = self.db.query(models.Plan).filter(models.Plan.type == plan_type).first()
        if plan is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, f"{models.PlanType(plan_type).value.capitalize()} plan not found")
        return plan

    def update_plan(self, plan_id: int, plan_update: schemas.PlanUpdate) -> models.Plan:
        plan = self.get_plan(plan_id)
        data = plan_update.model_dump(exclude_unset=True)
        _check_non_negative(data.get("price"), data.get("client_limit"), data.get("clinician_limit"))
        for key, value in data.items():
            setattr(plan, key, value)
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Updated plan {plan.id}: {sorted(data)}")
        return plan

    def toggle_plan_status(self, plan_id: int) -> models.Plan:
        plan = self.get_plan(plan_id)
        plan.is_active = not plan.is_active
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Plan {plan.id} is now {'active' if plan.is_active else 'inactive'}")
        return plan

    @staticmethod
    def check_feature_access(plan: models.Plan, feature: str) -> bool:
        return bool((plan.features or {}).get(feature, False))

    def seed_default_plans(self) -> Dict[str, Any]:
        """Create any missing default plan; safe to run repeatedly."""
        results = []
        for plan_data in DEFAULT_PLANS:
            plan_type = plan_data["type"]
            try:
                existing = self.db.query(models.Plan).filter(models.Plan.type == plan_type).first()
                if existing:
                    results.append({"type": plan_type, "success": True, "created": False})
                    logger.info(f"{plan_data['name']} already exists")
                    continue
                self.create_plan(schemas.PlanCreate(**plan_data))
                results.append({"type": plan_type, "success": True, "created": True})
            except Exception as e:
                self.db.rollback()
                message = e.message if isinstance(e, ApiError) else str(e)
                logger.error(f"Failed to create {plan_data['name']}: {message}")
                results.append({"type": plan_type, "success": False, "error": message})

        return {
            "created": sum(1 for r in results if r.get("created")),
            "existing": sum(1 for r in results if r["success"] and not r.get("created")),
            "failed": sum(1 for r in results if not r["success"]),
            "results": results,
        }
