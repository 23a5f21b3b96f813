from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.inventory import Ingredient, StockMovement
from app.services.stock_ledger import (
    create_manual_movement,
    list_ingredients,
    list_low_stock,
    list_movements,
)

router = APIRouter(prefix="/api/tenants/{tenant_id}/inventory", tags=["inventory"])


class IngredientRead(BaseModel):
    id: int
    tenant_id: int
    name: str
    unit: str
    stock: float
    min_stock: float
    cost_per_unit: float
    is_active: bool


class StockMovementCreate(BaseModel):
    ingredient_id: int
    type: str
    quantity: float = Field(..., ge=0)
    reason: Optional[str] = None


class StockMovementRead(BaseModel):
    id: int
    tenant_id: int
    ingredient_id: int
    ingredient_name: Optional[str]
    type: str
    quantity: float
    previous_stock: float
    new_stock: float
    reason: Optional[str]
    order_id: Optional[int]
    created_at: Optional[str]


def _ingredient_to_read(ingredient: Ingredient) -> IngredientRead:
    return IngredientRead(
        id=ingredient.id,
        tenant_id=ingredient.tenant_id,
        name=ingredient.name,
        unit=ingredient.unit,
        stock=ingredient.stock,
        min_stock=ingredient.min_stock,
        cost_per_unit=ingredient.cost_per_unit,
        is_active=ingredient.is_active,
    )


def _movement_to_read(movement: StockMovement) -> StockMovementRead:
    return StockMovementRead(
        id=movement.id,
        tenant_id=movement.tenant_id,
        ingredient_id=movement.ingredient_id,
        ingredient_name=movement.ingredient.name if movement.ingredient else None,
        type=movement.type,
        quantity=movement.quantity,
        previous_stock=movement.previous_stock,
        new_stock=movement.new_stock,
        reason=movement.reason,
        order_id=movement.order_id,
        created_at=movement.created_at.isoformat() if movement.created_at else None,
    )


@router.get("/ingredients", response_model=List[IngredientRead])
def get_ingredients(tenant_id: int, db: Session = Depends(get_db)):
    return [_ingredient_to_read(ingredient) for ingredient in list_ingredients(db, tenant_id)]


@router.get("/ingredients/low-stock", response_model=List[IngredientRead])
def get_low_stock(tenant_id: int, db: Session = Depends(get_db)):
    return [_ingredient_to_read(ingredient) for ingredient in list_low_stock(db, tenant_id)]


@router.get("/movements", response_model=List[StockMovementRead])
def get_movements(
    tenant_id: int,
    ingredient_id: Optional[int] = None,
    order_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    movements = list_movements(db, tenant_id, ingredient_id=ingredient_id, order_id=order_id)
    return [_movement_to_read(movement) for movement in movements]


@router.post("/movements", response_model=StockMovementRead, status_code=201)
def post_movement(tenant_id: int, payload: StockMovementCreate, db: Session = Depends(get_db)):
    movement = create_manual_movement(
        db,
        tenant_id,
        payload.ingredient_id,
        payload.type,
        payload.quantity,
        payload.reason,
    )
    return _movement_to_read(movement)
