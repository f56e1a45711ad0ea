"""
Code systems known to the service, their FHIR URIs, and the shared
confidence and equivalence vocabularies.
"""
import enum

from .exceptions import InvalidConfidenceError, UnknownCodeSystemError


class CodeSystem(str, enum.Enum):
    NAMASTE = "NAMASTE"
    ICD11 = "ICD11"
    SNOMED = "SNOMED"
    LOINC = "LOINC"


ALL_SYSTEMS = "ALL"

SYSTEM_URIS = {
    CodeSystem.NAMASTE: "https://terminology.mohfw.gov.in/fhir/CodeSystem/namaste-codes",
    CodeSystem.ICD11: "http://id.who.int/icd/release/11/mms",
    CodeSystem.SNOMED: "http://snomed.info/sct",
    CodeSystem.LOINC: "http://loinc.org",
}

_ALIASES = {
    "namaste": CodeSystem.NAMASTE,
    "ayush": CodeSystem.NAMASTE,
    "icd11": CodeSystem.ICD11,
    "icd-11": CodeSystem.ICD11,
    "tm2": CodeSystem.ICD11,
    "icd11-tm2": CodeSystem.ICD11,
    "icd-11-mms": CodeSystem.ICD11,
    "snomed": CodeSystem.SNOMED,
    "snomed-ct": CodeSystem.SNOMED,
    "snomedct": CodeSystem.SNOMED,
    "loinc": CodeSystem.LOINC,
}
_ALIASES.update({uri.lower(): system for system, uri in SYSTEM_URIS.items()})
# Older ConceptMaps and the WHO browser use these URIs for ICD-11.
_ALIASES["http://id.who.int/icd/release/11/tm2"] = CodeSystem.ICD11
_ALIASES["http://id.who.int/icd/release/11/2024-01/mms"] = CodeSystem.ICD11


def resolve_system(value) -> CodeSystem:
    """Accept an enum member, its name, a known alias or a FHIR URI."""
    if isinstance(value, CodeSystem):
        return value
    if value is None:
        raise UnknownCodeSystemError(value)
    system = _ALIASES.get(str(value).strip().lower())
    if system is None:
        raise UnknownCodeSystemError(value)
    return system


def resolve_system_filter(value):
    """Like resolve_system, but 'ALL' (or nothing) selects every system."""
    if value is None or str(value).strip().upper() == ALL_SYSTEMS:
        return list(CodeSystem)
    return [resolve_system(value)]


def system_uri(system) -> str:
    return SYSTEM_URIS[resolve_system(system)]


class Equivalence(str, enum.Enum):
    EQUIVALENT = "equivalent"
    RELATED = "related"
    NARROWER = "narrower"
    BROADER = "broader"
    UNMATCHED = "unmatched"


_EQUIVALENCE_ALIASES = {
    "relatedto": Equivalence.RELATED,
    "wider": Equivalence.BROADER,
    "inexact": Equivalence.RELATED,
    "equal": Equivalence.EQUIVALENT,
}


def normalize_equivalence(value) -> str:
    if not value:
        return Equivalence.RELATED.value
    key = str(value).strip().lower()
    if key in _EQUIVALENCE_ALIASES:
        return _EQUIVALENCE_ALIASES[key].value
    try:
        return Equivalence(key).value
    except ValueError:
        raise ValueError(f"Unknown equivalence: {value!r}")


def normalize_confidence(value):
    """
    Convert a confidence score to the canonical 0-1 scale.

    Writers of mapping data use either a fraction (0.87) or a percentage
    (87). Values greater than 1 and at most 100 are read as percentages.
    None passes through; anything negative or above 100 is rejected.
    """
    if value is None or value == "":
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise InvalidConfidenceError(f"Confidence is not a number: {value!r}")
    if score != score or score < 0 or score > 100:
        raise InvalidConfidenceError(f"Confidence out of range: {value!r}")
    if score > 1:
        score = score / 100.0
    return round(score, 4)
