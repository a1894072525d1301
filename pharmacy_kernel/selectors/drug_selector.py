"""
DrugSelector -- read access to the drug catalog.
"""

from uuid import UUID

from sqlalchemy import select

from pharmacy_kernel.domain.dtos import DrugInfo
from pharmacy_kernel.exceptions import DrugNotFoundError
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.selectors.base import BaseSelector, as_uuid


def to_drug_info(drug: Drug) -> DrugInfo:
    return DrugInfo(
        id=drug.id,
        code=drug.code,
        name=drug.name,
        generic_name=drug.generic_name,
        form=drug.form,
        strength=drug.strength,
        reorder_level=drug.reorder_level,
        is_active=drug.is_active,
    )


def drug_ref_clause(ref: UUID | str):
    """WHERE clause matching a drug by UUID or by display code."""
    drug_uuid = as_uuid(ref)
    if drug_uuid is not None:
        return Drug.id == drug_uuid
    return Drug.code == str(ref)


class DrugSelector(BaseSelector[Drug]):
    """Catalog queries."""

    def list_drugs(self, active_only: bool = False) -> list[DrugInfo]:
        """All drugs ordered by name, then code."""
        stmt = select(Drug).order_by(Drug.name, Drug.code)
        if active_only:
            stmt = stmt.where(Drug.is_active.is_(True))
        return [to_drug_info(d) for d in self.session.scalars(stmt)]

    def get_drug(self, drug_ref: UUID | str) -> DrugInfo:
        """
        Fetch one drug by UUID or code.

        Raises:
            DrugNotFoundError: If no drug matches.
        """
        drug = self.session.scalars(
            select(Drug).where(drug_ref_clause(drug_ref))
        ).one_or_none()
        if drug is None:
            raise DrugNotFoundError(str(drug_ref))
        return to_drug_info(drug)

    def get_by_code(self, code: str) -> DrugInfo:
        drug = self.session.scalars(
            select(Drug).where(Drug.code == code)
        ).one_or_none()
        if drug is None:
            raise DrugNotFoundError(code)
        return to_drug_info(drug)

    def code_exists(self, code: str) -> bool:
        return self.session.scalar(
            select(Drug.id).where(Drug.code == code)
        ) is not None

    def search(self, term: str, active_only: bool = True) -> list[DrugInfo]:
        """Case-insensitive match on name, generic name or code."""
        escaped = term.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        stmt = (
            select(Drug)
            .where(
                Drug.name.ilike(pattern, escape="\\")
                | Drug.generic_name.ilike(pattern, escape="\\")
                | Drug.code.ilike(pattern, escape="\\")
            )
            .order_by(Drug.name, Drug.code)
        )
        if active_only:
            stmt = stmt.where(Drug.is_active.is_(True))
        return [to_drug_info(d) for d in self.session.scalars(stmt)]
