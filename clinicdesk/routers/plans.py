# clinicdesk/routers/plans.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from .. import schemas, security, models
from ..database import get_db
from ..services.plan_service import PlanService

router = APIRouter(
    prefix="/plans",
    tags=["Plans"],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=List[schemas.PlanResponse])
def list_plans(db: Session = Depends(get_db)):
    """
    Public plan catalog: active plans ordered by price.
    """
    return PlanService(db).list_plans()


@router.get("/all", response_model=List[schemas.PlanResponse], dependencies=[Depends(security.require_platform_admin)])
def list_all_plans(db: Session = Depends(get_db)):
    return PlanService(db).list_plans(include_inactive=True)


@router.post("", response_model=schemas.PlanResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(security.require_platform_admin)])
def create_plan(plan: schemas.PlanCreate, db: Session = Depends(get_db)):
    return PlanService(db).create_plan(plan)


@router.post("/seed", response_model=schemas.SeedPlansResponse, dependencies=[Depends(security.require_platform_admin)])
def seed_plans(db: Session = Depends(get_db)):
    return PlanService(db).seed_default_plans()


@router.get("/type/{plan_type}", response_model=schemas.PlanResponse)
def read_plan_by_type(plan_type: models.PlanType, db: Session = Depends(get_db)):
    return PlanService(db).get_plan_by_type(plan_type)


@router.get("/{plan_id}", response_model=schemas.PlanResponse)
def read_plan(plan_id: int, db: Session = Depends(get_db)):
    return PlanService(db).get_plan(plan_id)


@router.put("/{plan_id}", response_model=schemas.PlanResponse, dependencies=[Depends(security.require_platform_admin)])
def update_plan(plan_id: int, plan_update: schemas.PlanUpdate, db: Session = Depends(get_db)):
    return PlanService(db).update_plan(plan_id, plan_update)


@router.post("/{plan_id}/toggle", response_model=schemas.PlanResponse,
             dependencies=[Depends(security.require_platform_admin)])
def toggle_plan(plan_id: int, db: Session = Depends(get_db)):
    return PlanService(db).toggle_plan_status(plan_id)
