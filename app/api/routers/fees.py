# app/api/routers/fees.py - Fee catalog: fee types and fee structures
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple

from app.core.db import get_db
from app.core.security import CallerIdentity, COLLECTOR_ROLES
from app.api.deps.auth import get_current_caller, require_roles
from app.api.deps.tenancy import pagination
from app.schemas.common import Page
from app.schemas.fee_schema import (
    FeeTypeCreate, FeeTypeUpdate, FeeTypeOut,
    FeeStructureCreate, FeeStructureUpdate, FeeStructureOut,
)
from app.services.catalog_service import CatalogService

router = APIRouter()

manage_catalog = require_roles(sorted(COLLECTOR_ROLES))


# ---------- Fee Types ----------

@router.post("/fee-types", response_model=FeeTypeOut, status_code=status.HTTP_201_CREATED)
async def create_fee_type(
    data: FeeTypeCreate,
    caller: CallerIdentity = Depends(manage_catalog),
    db: Session = Depends(get_db),
):
    """Create a fee type"""
    fee_type = CatalogService(db).create_fee_type(data.name, data.category, data.description)
    return FeeTypeOut.model_validate(fee_type)


@router.get("/fee-types", response_model=List[FeeTypeOut])
async def list_fee_types(
    active_only: bool = False,
    category: Optional[str] = None,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """List fee types"""
    return [FeeTypeOut.model_validate(t) for t in CatalogService(db).list_fee_types(active_only, category)]


@router.get("/fee-types/{fee_type_id}", response_model=FeeTypeOut)
async def get_fee_type(
    fee_type_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return FeeTypeOut.model_validate(CatalogService(db).get_fee_type(fee_type_id))


@router.patch("/fee-types/{fee_type_id}", response_model=FeeTypeOut)
async def update_fee_type(
    fee_type_id: str,
    data: FeeTypeUpdate,
    caller: CallerIdentity = Depends(manage_catalog),
    db: Session = Depends(get_db),
):
    """Update or deactivate a fee type"""
    fee_type = CatalogService(db).update_fee_type(fee_type_id, data.model_dump(exclude_unset=True))
    return FeeTypeOut.model_validate(fee_type)


@router.delete("/fee-types/{fee_type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_fee_type(
    fee_type_id: str,
    caller: CallerIdentity = Depends(manage_catalog),
    db: Session = Depends(get_db),
):
    """Delete a fee type no structure references"""
    CatalogService(db).delete_fee_type(fee_type_id)


# ---------- Fee Structures ----------

@router.post("/fee-structures", response_model=FeeStructureOut, status_code=status.HTTP_201_CREATED)
async def create_fee_structure(
    data: FeeStructureCreate,
    caller: CallerIdentity = Depends(manage_catalog),
    db: Session = Depends(get_db),
):
    """Create a fee structure for an academic year and a set of classes"""
    structure = CatalogService(db).create_structure(**data.model_dump())
    return FeeStructureOut.model_validate(structure)


@router.get("/fee-structures", response_model=Page[FeeStructureOut])
async def list_fee_structures(
    academic_year: Optional[str] = None,
    fee_type_id: Optional[str] = None,
    class_name: Optional[str] = Query(None, alias="class"),
    active_only: bool = False,
    paging: Tuple[int, int] = Depends(pagination),
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    page, limit = paging
    items, total = CatalogService(db).list_structures(
        page, limit,
        academic_year=academic_year,
        fee_type_id=fee_type_id,
        class_name=class_name,
        active_only=active_only,
    )
    return Page[FeeStructureOut].build(items, page, limit, total, FeeStructureOut)


@router.get("/fee-structures/{structure_id}", response_model=FeeStructureOut)
async def get_fee_structure(
    structure_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return FeeStructureOut.model_validate(CatalogService(db).get_structure(structure_id))


@router.patch("/fee-structures/{structure_id}", response_model=FeeStructureOut)
async def update_fee_structure(
    structure_id: str,
    data: FeeStructureUpdate,
    caller: CallerIdentity = Depends(manage_catalog),
    db: Session = Depends(get_db),
):
    """Update a structure; existing obligations keep their amounts"""
    structure = CatalogService(db).update_structure(structure_id, data.model_dump(exclude_unset=True))
    return FeeStructureOut.model_validate(structure)


@router.delete("/fee-structures/{structure_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_fee_structure(
    structure_id: str,
    caller: CallerIdentity = Depends(manage_catalog),
    db: Session = Depends(get_db),
):
    CatalogService(db).delete_structure(structure_id)
