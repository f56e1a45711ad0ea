"""Builders for the FHIR R4 resource shapes returned by the service."""
import datetime
import uuid

PUBLISHER = "Ministry of AYUSH, Government of India"
CONFIDENCE_PROPERTY = "http://terminology.mohfw.gov.in/fhir/CodeSystem/mapping-confidence"
CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"

BUNDLE_TYPES = (
    "document", "message", "transaction", "transaction-response", "batch",
    "batch-response", "history", "searchset", "collection",
)


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def new_id() -> str:
    return str(uuid.uuid4())


def meta(profile=None) -> dict:
    m = {"versionId": "1", "lastUpdated": now_iso()}
    if profile:
        m["profile"] = [f"http://hl7.org/fhir/StructureDefinition/{profile}"]
    return m


def jurisdiction_india() -> list:
    return [{"coding": [{"system": "urn:iso:std:iso:3166", "code": "IN", "display": "India"}]}]


def coding(system: str, code: str, display=None) -> dict:
    c = {"system": system, "code": code}
    if display:
        c["display"] = display
    return c


def operation_outcome(severity: str, code: str, details: str, diagnostics=None) -> dict:
    issue = {"severity": severity, "code": code, "details": {"text": details}}
    if diagnostics:
        issue["diagnostics"] = diagnostics
    return {
        "resourceType": "OperationOutcome",
        "id": new_id(),
        "meta": meta("OperationOutcome"),
        "issue": [issue],
    }


def bundle(bundle_type: str, entries, bundle_id=None) -> dict:
    entries = list(entries)
    resource = {
        "resourceType": "Bundle",
        "id": bundle_id or new_id(),
        "meta": {"lastUpdated": now_iso()},
        "type": bundle_type,
        "timestamp": now_iso(),
        "entry": entries,
    }
    if bundle_type in ("searchset", "history"):
        resource["total"] = len(entries)
    return resource
