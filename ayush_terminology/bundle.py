"""
Assembles dual-coded FHIR transaction bundles from a patient and the
diagnoses recorded for them. Pure construction; submitting the bundle is
up to the caller.
"""
from dataclasses import dataclass
from typing import Optional

from . import fhir
from .codesystems import CodeSystem, SYSTEM_URIS
from .exceptions import BundleValidationError

CONDITION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-category"
CONFIDENCE_EXTENSION = "http://hl7.org/fhir/StructureDefinition/coding-mapping-confidence"


@dataclass
class Patient:
    id: str
    name: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[str] = None


def _patient_resource(patient: Patient) -> dict:
    resource = {"resourceType": "Patient", "id": patient.id,
                "identifier": [{"system": "https://healthid.ndhm.gov.in", "value": patient.id}]}
    if patient.name:
        resource["name"] = [{"text": patient.name}]
    if patient.gender:
        resource["gender"] = patient.gender
    if patient.birth_date:
        resource["birthDate"] = patient.birth_date
    return resource


def _condition_resource(patient: Patient, entry) -> dict:
    codings = [fhir.coding(SYSTEM_URIS[CodeSystem.NAMASTE], entry.code, entry.display)]
    translation = entry.translation
    if translation is not None and translation.success and translation.best is not None:
        best = translation.best
        target = fhir.coding(best.target_system, best.target_code, best.target_display)
        if best.confidence is not None:
            target["extension"] = [{"url": CONFIDENCE_EXTENSION, "valueDecimal": best.confidence}]
        codings.append(target)

    condition = {
        "resourceType": "Condition",
        "id": fhir.new_id(),
        "clinicalStatus": {"coding": [fhir.coding(fhir.CONDITION_CLINICAL_SYSTEM, entry.clinical_status)]},
        "category": [{"coding": [fhir.coding(CONDITION_CATEGORY_SYSTEM, "problem-list-item", "Problem List Item")]}],
        "code": {"coding": codings, "text": entry.display or entry.code},
        "subject": {"reference": f"Patient/{patient.id}"},
    }
    if entry.recorded_at:
        condition["recordedDate"] = entry.recorded_at
    notes = (entry.notes or "").strip()
    if notes:
        condition["note"] = [{"text": notes}]
    return condition


def check_bundle_preconditions(patient_id, entries):
    if not (patient_id or "").strip():
        raise BundleValidationError("Patient information is required for FHIR bundle creation")
    if not entries:
        raise BundleValidationError("No diagnoses provided for FHIR bundle creation")


def assemble_transaction_bundle(patient: Patient, entries, bundle_id=None) -> dict:
    """
    Build a transaction bundle with one Patient and one Condition per
    diagnosis entry, in order.

    Each Condition always carries the NAMASTE coding, adds the translated
    target coding only when the entry's translation succeeded, and adds a
    note only for non-blank clinical notes.

    Raises BundleValidationError when the patient id is missing or there
    are no entries.
    """
    entries = list(entries or [])
    check_bundle_preconditions(patient.id if patient is not None else None, entries)

    bundle_entries = [{
        "fullUrl": f"urn:uuid:{fhir.new_id()}",
        "resource": _patient_resource(patient),
        "request": {"method": "PUT", "url": f"Patient/{patient.id}"},
    }]
    for entry in entries:
        condition = _condition_resource(patient, entry)
        bundle_entries.append({
            "fullUrl": f"urn:uuid:{condition['id']}",
            "resource": condition,
            "request": {"method": "POST", "url": "Condition"},
        })
    return fhir.bundle("transaction", bundle_entries, bundle_id=bundle_id)
