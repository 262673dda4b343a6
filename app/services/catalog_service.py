# app/services/catalog_service.py - Fee types and fee structures
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db import atomic
from app.core.errors import NotFound, InvalidState, ValidationError
from app.models.fee import FeeType, FeeStructure
from app.repositories.base import paginate
from app.repositories.student_fee_repo import StudentFeeRepository

logger = logging.getLogger(__name__)


class CatalogService:
    """Reference data the obligations are instantiated from"""

    def __init__(self, db: Session):
        self.db = db

    # ---------- fee types ----------

    def create_fee_type(self, name: str, category: str, description: Optional[str] = None) -> FeeType:
        name = name.strip()
        existing = self.db.execute(select(FeeType).where(FeeType.name == name)).scalar_one_or_none()
        if existing:
            raise InvalidState(f"Fee type '{name}' already exists", fee_type_id=existing.id)

        with atomic(self.db):
            fee_type = FeeType(name=name, category=category, description=description)
            self.db.add(fee_type)

        logger.info(f"Fee type created: {fee_type.name} ({fee_type.category})")
        return fee_type

    def get_fee_type(self, fee_type_id: str) -> FeeType:
        fee_type = self.db.get(FeeType, fee_type_id)
        if not fee_type:
            raise NotFound("FeeType", fee_type_id)
        return fee_type

    def list_fee_types(self, active_only: bool = False, category: Optional[str] = None) -> List[FeeType]:
        stmt = select(FeeType)
        if active_only:
            stmt = stmt.where(FeeType.is_active.is_(True))
        if category:
            stmt = stmt.where(FeeType.category == category)
        return list(self.db.execute(stmt.order_by(FeeType.name)).scalars().all())

    def update_fee_type(self, fee_type_id: str, changes: Dict[str, Any]) -> FeeType:
        fee_type = self.get_fee_type(fee_type_id)
        with atomic(self.db):
            for field, value in changes.items():
                setattr(fee_type, field, value)
            # Keep structure snapshots in step with a renamed type
            if "name" in changes:
                for structure in fee_type.structures:
                    structure.fee_type_name = fee_type.name
        return fee_type

    def delete_fee_type(self, fee_type_id: str) -> None:
        """
        Delete an unreferenced fee type.

        Raises:
            InvalidState: if any structure references it; deactivate instead
        """
        fee_type = self.get_fee_type(fee_type_id)
        if fee_type.structures:
            raise InvalidState(
                f"Fee type '{fee_type.name}' is referenced by {len(fee_type.structures)} "
                f"fee structure(s); deactivate it instead",
                fee_type_id=fee_type.id,
            )
        with atomic(self.db):
            self.db.delete(fee_type)
        logger.info(f"Fee type deleted: {fee_type.name}")

    # ---------- fee structures ----------

    def create_structure(
        self,
        fee_type_id: str,
        academic_year: str,
        applicable_classes: List[str],
        amount,
        frequency: str = "annual",
        due_day: int = 10,
        is_optional: bool = False,
    ) -> FeeStructure:
        fee_type = self.get_fee_type(fee_type_id)
        if not fee_type.is_active:
            raise ValidationError(f"Fee type '{fee_type.name}' is inactive", fee_type_id=fee_type.id)
        if not applicable_classes:
            raise ValidationError("A fee structure needs at least one applicable class")

        with atomic(self.db):
            structure = FeeStructure(
                fee_type_id=fee_type.id,
                fee_type_name=fee_type.name,
                academic_year=academic_year,
                applicable_classes=list(dict.fromkeys(applicable_classes)),
                amount=amount,
                frequency=frequency,
                due_day=due_day,
                is_optional=is_optional,
            )
            self.db.add(structure)

        logger.info(
            f"Fee structure created: {fee_type.name} {academic_year} "
            f"{structure.amount} for {', '.join(structure.applicable_classes)}"
        )
        return structure

    def get_structure(self, structure_id: str) -> FeeStructure:
        structure = self.db.get(FeeStructure, structure_id)
        if not structure:
            raise NotFound("FeeStructure", structure_id)
        return structure

    def list_structures(
        self,
        page: int,
        limit: int,
        academic_year: Optional[str] = None,
        fee_type_id: Optional[str] = None,
        class_name: Optional[str] = None,
        active_only: bool = False,
    ):
        stmt = select(FeeStructure)
        if academic_year:
            stmt = stmt.where(FeeStructure.academic_year == academic_year)
        if fee_type_id:
            stmt = stmt.where(FeeStructure.fee_type_id == fee_type_id)
        if active_only:
            stmt = stmt.where(FeeStructure.is_active.is_(True))
        stmt = stmt.order_by(FeeStructure.academic_year.desc(), FeeStructure.fee_type_name)

        if class_name:
            # JSON membership is not portable across backends; filter in Python
            rows = [s for s in self.db.execute(stmt).scalars().all() if class_name in s.applicable_classes]
            start = (page - 1) * limit
            return rows[start:start + limit], len(rows)
        return paginate(self.db, stmt, page, limit)

    def update_structure(self, structure_id: str, changes: Dict[str, Any]) -> FeeStructure:
        """Amount changes apply to future obligations only"""
        structure = self.get_structure(structure_id)
        if "applicable_classes" in changes and not changes["applicable_classes"]:
            raise ValidationError("A fee structure needs at least one applicable class")
        with atomic(self.db):
            for field, value in changes.items():
                setattr(structure, field, value)
        logger.info(f"Fee structure updated: {structure.id} {sorted(changes)}")
        return structure

    def delete_structure(self, structure_id: str) -> None:
        structure = self.get_structure(structure_id)
        if StudentFeeRepository(self.db).exists_for_structure(structure.id):
            raise InvalidState(
                "Fee structure has instantiated obligations; deactivate it instead",
                fee_structure_id=structure.id,
            )
        with atomic(self.db):
            self.db.delete(structure)
        logger.info(f"Fee structure deleted: {structure.id}")
