"""
CatalogService -- writes to the drug catalog.

Responsibility:
    Registers drugs, edits their descriptive fields and toggles their
    active flag.  Never touches stock: quantities live on batches and are
    moved only by BatchService and DispenseService.

Architecture position:
    Kernel > Services.  Flush-only.

Invariants enforced:
    - Drug codes are unique.  Caller-supplied codes are checked up front and
      the INSERT runs in a savepoint so a concurrent duplicate surfaces as
      DuplicateCodeError instead of aborting the caller's transaction.
    - Generated codes (``DRG`` + 5 digits) come from the locked
      ``drug_code`` counter and skip values already taken by a
      caller-supplied code.
    - Drugs are never deleted; deactivation is the only retirement path.

Failure modes:
    - DuplicateCodeError, InvalidFieldError, DrugNotFoundError.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.dtos import DrugInfo
from pharmacy_kernel.exceptions import (
    DrugNotFoundError,
    DuplicateCodeError,
    InvalidFieldError,
)
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.selectors.drug_selector import drug_ref_clause, to_drug_info
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.services.sequence_service import SequenceService

logger = get_logger("services.catalog")

DRUG_CODE_PREFIX = "DRG"

UPDATABLE_FIELDS = frozenset({
    "code",
    "name",
    "generic_name",
    "form",
    "strength",
    "reorder_level",
    "is_active",
})


def _required_text(field: str, value: Any, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidFieldError(field, "must be a non-empty string")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidFieldError(field, f"must be at most {max_length} characters")
    return value


def _optional_text(field: str, value: Any, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidFieldError(field, "must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidFieldError(field, f"must be at most {max_length} characters")
    return value or None


def _reorder_level(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidFieldError("reorder_level", "must be an integer >= 0")
    return value


class CatalogService(BaseService[Drug]):
    """Drug registration and maintenance."""

    def __init__(self, session: Session, sequence_service: SequenceService | None = None):
        super().__init__(session)
        self._sequences = sequence_service or SequenceService(session)

    def _load(self, drug_ref: UUID | str) -> Drug:
        drug = self.session.scalars(
            select(Drug).where(drug_ref_clause(drug_ref))
        ).one_or_none()
        if drug is None:
            raise DrugNotFoundError(str(drug_ref))
        return drug

    def _code_taken(self, code: str) -> bool:
        return self.session.scalar(select(Drug.id).where(Drug.code == code)) is not None

    def _generate_code(self) -> str:
        while True:
            code = f"{DRUG_CODE_PREFIX}{self._sequences.next_value(SequenceService.DRUG_CODE):05d}"
            if not self._code_taken(code):
                return code
            logger.debug("drug_code_skipped", extra={"drug_code": code})

    def create_drug(
        self,
        *,
        name: str,
        form: str,
        created_by: str,
        code: str | None = None,
        generic_name: str | None = None,
        strength: str | None = None,
        reorder_level: int = 0,
        is_active: bool = True,
    ) -> DrugInfo:
        """
        Register a drug.

        Raises:
            InvalidFieldError: Blank name/form/code or negative reorder level.
            DuplicateCodeError: ``code`` is already registered.
        """
        name = _required_text("name", name, 200)
        form = _required_text("form", form, 50)
        generic_name = _optional_text("generic_name", generic_name, 200)
        strength = _optional_text("strength", strength, 50)
        reorder_level = _reorder_level(reorder_level)

        if code is None:
            code = self._generate_code()
        else:
            code = _required_text("code", code, 20)
            if self._code_taken(code):
                raise DuplicateCodeError(code)

        drug = Drug(
            code=code,
            name=name,
            generic_name=generic_name,
            form=form,
            strength=strength,
            reorder_level=reorder_level,
            is_active=bool(is_active),
            created_by=created_by,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(drug)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateCodeError(code)

        logger.info(
            "drug_created",
            extra={"drug_code": code, "drug_name": name, "reorder_level": reorder_level},
        )
        return to_drug_info(drug)

    def update_drug(
        self,
        drug_ref: UUID | str,
        fields: dict[str, Any],
        updated_by: str,
    ) -> DrugInfo:
        """
        Partially update descriptive fields.

        Raises:
            DrugNotFoundError: No such drug.
            InvalidFieldError: Unknown field or invalid value.
            DuplicateCodeError: Renaming to a code already in use.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidFieldError(
                ", ".join(sorted(unknown)),
                f"not updatable; allowed: {', '.join(sorted(UPDATABLE_FIELDS))}",
            )

        drug = self._load(drug_ref)
        changes: dict[str, Any] = {}
        for field, value in fields.items():
            if field == "name":
                value = _required_text("name", value, 200)
            elif field == "form":
                value = _required_text("form", value, 50)
            elif field == "code":
                value = _required_text("code", value, 20)
                if value != drug.code and self._code_taken(value):
                    raise DuplicateCodeError(value)
            elif field == "generic_name":
                value = _optional_text("generic_name", value, 200)
            elif field == "strength":
                value = _optional_text("strength", value, 50)
            elif field == "reorder_level":
                value = _reorder_level(value)
            elif field == "is_active":
                value = bool(value)
            changes[field] = value

        for field, value in changes.items():
            setattr(drug, field, value)
        drug.updated_by = updated_by
        self.session.flush()

        logger.info(
            "drug_updated",
            extra={"drug_code": drug.code, "fields": sorted(changes)},
        )
        return to_drug_info(drug)

    def set_active(self, drug_ref: UUID | str, active: bool, updated_by: str) -> DrugInfo:
        drug = self._load(drug_ref)
        if drug.is_active != active:
            drug.is_active = active
            drug.updated_by = updated_by
            self.session.flush()
            logger.info(
                "drug_activated" if active else "drug_deactivated",
                extra={"drug_code": drug.code},
            )
        return to_drug_info(drug)
