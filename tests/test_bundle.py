"""Tests for dual-coded transaction bundle assembly."""

import pytest

from ayush_terminology.bundle import Patient, assemble_transaction_bundle
from ayush_terminology.codesystems import CodeSystem, SYSTEM_URIS
from ayush_terminology.diagnosis import DiagnosisDraft, ProblemList
from ayush_terminology.exceptions import BundleValidationError
from ayush_terminology.translation import Translation, TranslationResult


def _translated(code, target="SM25.1", confidence=0.93):
    return TranslationResult(True, "NAMASTE", code, [
        Translation(target, "Digestive fire weakness (TM2)", SYSTEM_URIS[CodeSystem.ICD11], "equivalent", confidence),
    ])


def _untranslated(code):
    return TranslationResult(False, "NAMASTE", code, [])


def _entries(*drafts):
    problems = ProblemList()
    for code, display, translation, notes in drafts:
        problems.add(DiagnosisDraft().select(code, display, translation).annotate(notes))
    return problems.entries


@pytest.fixture
def patient():
    return Patient(id="PAT-001", name="Asha Rao", gender="female", birth_date="1980-04-02")


class TestAssembleTransactionBundle:
    def test_patient_then_one_condition_per_entry(self, patient):
        bundle = assemble_transaction_bundle(patient, _entries(
            ("AY006", "Agni Mandya", _translated("AY006"), ""),
            ("AY001", "Vata Dosha Imbalance", _untranslated("AY001"), ""),
        ))
        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "transaction"
        types = [e["resource"]["resourceType"] for e in bundle["entry"]]
        assert types == ["Patient", "Condition", "Condition"]
        assert bundle["entry"][0]["request"] == {"method": "PUT", "url": "Patient/PAT-001"}
        assert bundle["entry"][1]["request"]["method"] == "POST"
        assert "total" not in bundle

    def test_translated_condition_is_dual_coded(self, patient):
        bundle = assemble_transaction_bundle(patient, _entries(("AY006", "Agni Mandya", _translated("AY006"), "")))
        condition = bundle["entry"][1]["resource"]
        codings = condition["code"]["coding"]
        assert codings[0]["system"] == SYSTEM_URIS[CodeSystem.NAMASTE]
        assert codings[0]["code"] == "AY006"
        assert codings[1]["system"] == SYSTEM_URIS[CodeSystem.ICD11]
        assert codings[1]["code"] == "SM25.1"
        assert codings[1]["extension"][0]["valueDecimal"] == pytest.approx(0.93)
        assert condition["subject"] == {"reference": "Patient/PAT-001"}
        assert condition["recordedDate"]

    def test_untranslated_condition_keeps_only_namaste(self, patient):
        bundle = assemble_transaction_bundle(patient, _entries(("AY001", "Vata", _untranslated("AY001"), "")))
        codings = bundle["entry"][1]["resource"]["code"]["coding"]
        assert [c["code"] for c in codings] == ["AY001"]

    def test_note_only_for_non_blank_notes(self, patient):
        bundle = assemble_transaction_bundle(patient, _entries(
            ("AY006", "Agni Mandya", _translated("AY006"), "Worse after meals"),
            ("AY007", "Agni Vriddhi", _untranslated("AY007"), "   "),
        ))
        assert bundle["entry"][1]["resource"]["note"] == [{"text": "Worse after meals"}]
        assert "note" not in bundle["entry"][2]["resource"]

    def test_patient_demographics(self, patient):
        bundle = assemble_transaction_bundle(patient, _entries(("AY001", "Vata", _untranslated("AY001"), "")))
        resource = bundle["entry"][0]["resource"]
        assert resource["gender"] == "female"
        assert resource["birthDate"] == "1980-04-02"
        assert resource["name"] == [{"text": "Asha Rao"}]

    def test_missing_patient_id_is_rejected(self):
        with pytest.raises(BundleValidationError, match="Patient"):
            assemble_transaction_bundle(Patient(id="  "), _entries(("AY001", "Vata", _untranslated("AY001"), "")))

    def test_no_entries_is_rejected(self, patient):
        with pytest.raises(BundleValidationError, match="No diagnoses"):
            assemble_transaction_bundle(patient, [])

    def test_explicit_bundle_id(self, patient):
        bundle = assemble_transaction_bundle(
            patient, _entries(("AY001", "Vata", _untranslated("AY001"), "")), bundle_id="bundle-1"
        )
        assert bundle["id"] == "bundle-1"
