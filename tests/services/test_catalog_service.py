"""
Tests for CatalogService: drug registration and maintenance.
"""

import pytest

from pharmacy_kernel.exceptions import (
    DrugNotFoundError,
    DuplicateCodeError,
    InvalidFieldError,
)

ACTOR = "test-pharmacist"


class TestCreateDrug:

    def test_generated_codes_are_sequential(self, catalog_service):
        first = catalog_service.create_drug(name="Paracetamol", form="Tablet", created_by=ACTOR)
        second = catalog_service.create_drug(name="Amoxicillin", form="Capsule", created_by=ACTOR)

        assert first.code == "DRG00001"
        assert second.code == "DRG00002"
        assert first.is_active

    def test_explicit_code_kept(self, catalog_service):
        drug = catalog_service.create_drug(
            name="Ibuprofen", form="Tablet", code="IBU400", strength="400mg",
            reorder_level=20, created_by=ACTOR,
        )
        assert drug.code == "IBU400"
        assert drug.display_name == "Ibuprofen 400mg"
        assert drug.reorder_level == 20

    def test_generated_code_skips_taken_value(self, catalog_service):
        catalog_service.create_drug(name="Manual", form="Tablet", code="DRG00001", created_by=ACTOR)
        generated = catalog_service.create_drug(name="Auto", form="Tablet", created_by=ACTOR)
        assert generated.code == "DRG00002"

    def test_duplicate_code_rejected(self, catalog_service):
        catalog_service.create_drug(name="A", form="Tablet", code="X1", created_by=ACTOR)
        with pytest.raises(DuplicateCodeError) as exc_info:
            catalog_service.create_drug(name="B", form="Tablet", code="X1", created_by=ACTOR)
        assert exc_info.value.code == "DUPLICATE_CODE"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": "", "form": "Tablet"},
            {"name": "   ", "form": "Tablet"},
            {"name": "Paracetamol", "form": ""},
            {"name": "Paracetamol", "form": "Tablet", "reorder_level": -1},
        ],
    )
    def test_invalid_fields(self, catalog_service, kwargs):
        with pytest.raises(InvalidFieldError):
            catalog_service.create_drug(created_by=ACTOR, **kwargs)

    def test_names_are_trimmed(self, catalog_service):
        drug = catalog_service.create_drug(name="  Cetirizine ", form=" Syrup", created_by=ACTOR)
        assert drug.name == "Cetirizine"
        assert drug.form == "Syrup"


class TestUpdateDrug:

    def test_partial_update(self, catalog_service, make_drug):
        drug = make_drug()
        updated = catalog_service.update_drug(
            drug.code, {"reorder_level": 25, "strength": "650mg"}, updated_by=ACTOR,
        )
        assert updated.reorder_level == 25
        assert updated.strength == "650mg"
        assert updated.name == drug.name

    def test_unknown_field_rejected(self, catalog_service, make_drug):
        drug = make_drug()
        with pytest.raises(InvalidFieldError):
            catalog_service.update_drug(drug.id, {"quantity_on_hand": 5}, updated_by=ACTOR)

    def test_code_collision_rejected(self, catalog_service, make_drug):
        a = make_drug(name="A")
        b = make_drug(name="B")
        with pytest.raises(DuplicateCodeError):
            catalog_service.update_drug(b.id, {"code": a.code}, updated_by=ACTOR)

    def test_missing_drug(self, catalog_service):
        with pytest.raises(DrugNotFoundError):
            catalog_service.update_drug("DRG99999", {"name": "x"}, updated_by=ACTOR)


class TestActivation:

    def test_deactivate_and_reactivate(self, catalog_service, make_drug, captured_logs):
        drug = make_drug()

        off = catalog_service.set_active(drug.id, False, updated_by=ACTOR)
        on = catalog_service.set_active(drug.id, True, updated_by=ACTOR)

        assert not off.is_active
        assert on.is_active
        messages = [r["message"] for r in captured_logs()]
        assert "drug_deactivated" in messages
        assert "drug_activated" in messages
