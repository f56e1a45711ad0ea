"""
Integration tests for the HTTP API.

Covers terminology search and translation, the FHIR terminology resources,
bundle submission, ABHA login and diagnosis sessions.
"""

import json

import httpx
import jwt
import pytest
from fastapi import HTTPException

from ayush_terminology import main as app_module
from ayush_terminology import models
from ayush_terminology.codesystems import CodeSystem
from ayush_terminology.config import ABHA_TOKEN_SECRET
from ayush_terminology.ingestion_logic import build_concept_map, ingest_records
from ayush_terminology.seed_data import NAMASTE_TO_ICD11_MMS_BRIDGED, NAMASTE_TO_SNOMED_BRIDGE


class TestTerminologyEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": True}

    def test_search(self, seeded_client):
        response = seeded_client.get("/terminology/search", params={"query": "agni mandya", "system": "namaste"})
        assert response.status_code == 200
        body = response.json()
        assert body["system"] == "NAMASTE"
        assert body["total"] == 3
        first = body["results"][0]
        assert first["code"] == "AY006"
        assert first["mapping"]["target_code"] == "SM25.1"

    def test_search_no_hits_is_200_empty(self, seeded_client):
        response = seeded_client.get("/terminology/search", params={"query": "xyzzy"})
        assert response.status_code == 200
        body = response.json()
        assert body["results"] == []
        assert body["total"] == 0

    def test_search_requires_query(self, client):
        assert client.get("/terminology/search", params={"query": ""}).status_code == 422

    def test_search_unknown_system(self, seeded_client):
        response = seeded_client.get("/terminology/search", params={"query": "vata", "system": "HOMEOPATHY"})
        assert response.status_code == 400

    def test_translate_json(self, seeded_client):
        response = seeded_client.get("/terminology/translate", params={"system": "NAMASTE", "code": "AY019"})
        body = response.json()
        assert body["success"] is True
        assert [t["target_code"] for t in body["translations"]] == ["SM65.0", "SM69.0"]

    def test_translate_parameters_no_match(self, seeded_client):
        response = seeded_client.post("/translate", json={"system": "NAMASTE", "code": "AY999"})
        assert response.status_code == 200
        assert response.json()["parameter"][0] == {"name": "result", "valueBoolean": False}

    def test_translate_parameters_unknown_system(self, seeded_client):
        response = seeded_client.post("/translate", json={"system": "XYZ", "code": "AY001"})
        assert response.status_code == 400
        assert response.json()["resourceType"] == "OperationOutcome"

    def test_fhir_translate_operation(self, seeded_client):
        response = seeded_client.get("/fhir/ConceptMap/$translate", params={"system": "NAMASTE", "code": "AY006"})
        assert response.status_code == 200
        body = response.json()
        assert body["resourceType"] == "Parameters"
        assert body["parameter"][0]["valueBoolean"] is True

    def test_fhir_translate_reverse(self, seeded_client):
        params = {"system": "ICD11", "code": "SM25.1", "reverse": "true"}
        body = seeded_client.get("/fhir/ConceptMap/$translate", params=params).json()
        concept = body["parameter"][1]["part"][1]["valueCoding"]
        assert concept["code"] == "AY006"

    def test_fhir_translate_target_system(self, seeded_client):
        params = {"system": "NAMASTE", "code": "AY006", "targetsystem": "http://snomed.info/sct"}
        body = seeded_client.get("/fhir/ConceptMap/$translate", params=params).json()
        assert body["parameter"][0] == {"name": "result", "valueBoolean": False}

    def test_fhir_translate_unknown_target_system(self, seeded_client):
        params = {"system": "NAMASTE", "code": "AY006", "targetsystem": "XYZ"}
        response = seeded_client.get("/fhir/ConceptMap/$translate", params=params)
        assert response.status_code == 400
        assert response.json()["resourceType"] == "OperationOutcome"

    def test_mappings_are_paginated(self, seeded_client):
        response = seeded_client.get("/terminology/mappings", params={"page": 2, "limit": 10})
        body = response.json()
        assert body["pagination"] == {"page": 2, "limit": 10, "total": 26, "pages": 3}
        assert len(body["mappings"]) == 10

    def test_mappings_filter_by_status(self, seeded_client):
        response = seeded_client.get("/terminology/mappings", params={"status": "pending"})
        assert response.json()["pagination"]["total"] == 0

    def test_validate_mapping(self, seeded_client):
        response = seeded_client.post("/terminology/validate", json={"namaste_code": "AY006", "icd11_code": "SM25.1"})
        body = response.json()
        assert body["validation"]["overall_valid"] is True
        assert body["validation"]["mapping_exists"] is True
        assert body["existing_mapping"]["confidence"] == pytest.approx(0.93)

    def test_validate_unknown_codes(self, seeded_client):
        response = seeded_client.post("/terminology/validate", json={"namaste_code": "AY999", "icd11_code": "SM25.1"})
        validation = response.json()["validation"]
        assert validation["namaste_valid"] is False
        assert validation["overall_valid"] is False
        assert response.json()["existing_mapping"] is None


class TestUpload:
    def test_upload_requires_login(self, client):
        response = client.post("/terminology/upload", json={"system": "NAMASTE", "csv_data": "code,display\nAY1,x\n"})
        assert response.status_code == 401

    def test_viewer_cannot_upload(self, client, db, viewer_headers):
        response = client.post("/terminology/upload", headers=viewer_headers,
                               json={"system": "NAMASTE", "csv_data": "code,display\nAY102,x\n"})
        assert response.status_code == 403
        assert db.query(models.CodeSystemEntry).count() == 0

    def test_upload_loads_rows(self, client, db, auth_headers):
        csv_data = "namaste_code,namaste_display\nAY101,Test term\nnamaste_code,namaste_display\n,blank\n"
        response = client.post("/terminology/upload", headers=auth_headers,
                               json={"system": "NAMASTE", "csv_data": csv_data, "file_name": "extra.csv"})
        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["succeeded"] == 1
        assert summary["skipped_header"] == 1
        assert summary["skipped_blank"] == 1
        assert db.query(models.CodeSystemEntry).filter_by(code="AY101").count() == 1

    def test_upload_without_code_column(self, client, auth_headers):
        response = client.post("/terminology/upload", headers=auth_headers,
                               json={"system": "NAMASTE", "csv_data": "display\nx\n"})
        assert response.status_code == 400

    def test_upload_with_no_rows(self, client, auth_headers):
        response = client.post("/terminology/upload", headers=auth_headers,
                               json={"system": "ICD11", "csv_data": "code,display\n"})
        assert response.status_code == 400
        assert response.json()["detail"] == "No valid rows found in CSV"


class TestFhirResources:
    def test_code_system(self, seeded_client):
        body = seeded_client.get("/fhir/CodeSystem/namaste-codes").json()
        assert body["resourceType"] == "CodeSystem"
        assert body["count"] == 21

    def test_lookup(self, seeded_client):
        response = seeded_client.get("/fhir/CodeSystem/$lookup", params={"system": "NAMASTE", "code": "AY006"})
        assert response.status_code == 200
        params = {p["name"]: p for p in response.json()["parameter"]}
        assert params["display"]["valueString"] == "Agni Mandya"

    def test_lookup_unknown_code_is_404(self, seeded_client):
        response = seeded_client.get("/fhir/CodeSystem/$lookup", params={"system": "NAMASTE", "code": "AY999"})
        assert response.status_code == 404
        assert response.json()["issue"][0]["code"] == "not-found"

    def test_lookup_unknown_system_is_400(self, client):
        response = client.get("/fhir/CodeSystem/$lookup", params={"system": "XYZ", "code": "AY006"})
        assert response.status_code == 400

    def test_metadata(self, client):
        body = client.get("/fhir/metadata").json()
        assert body["resourceType"] == "CapabilityStatement"
        assert body["kind"] == "instance"

    def test_unknown_code_system(self, client):
        response = client.get("/fhir/CodeSystem/unknown")
        assert response.status_code == 404
        assert response.json()["issue"][0]["code"] == "not-found"

    def test_concept_map(self, seeded_client):
        body = seeded_client.get("/fhir/ConceptMap/namaste-to-icd11").json()
        assert body["resourceType"] == "ConceptMap"
        assert body["group"][0]["element"]

    def test_value_set_expand(self, seeded_client):
        response = seeded_client.get("/fhir/ValueSet/namaste-codes/$expand", params={"filter": "kapha", "count": 2})
        expansion = response.json()["expansion"]
        assert len(expansion["contains"]) == 2
        assert expansion["total"] >= 2


class TestBundleSubmission:
    def _bundle(self, **overrides):
        bundle = {
            "resourceType": "Bundle",
            "type": "collection",
            "entry": [{"resource": {"resourceType": "Condition", "id": "c1"}}],
        }
        bundle.update(overrides)
        return bundle

    def test_valid_bundle_is_stored_and_echoed(self, client, db, auth_headers):
        response = client.post("/fhir/Bundle", json=self._bundle(id="b-1"), headers=auth_headers)
        assert response.status_code == 201
        body = response.json()
        assert body["id"] == "b-1"
        assert body["entry"][0]["resource"]["id"] == "c1"
        stored = db.query(models.StoredBundle).filter_by(bundle_id="b-1").one()
        assert stored.entry_count == 1

    def test_id_is_assigned_when_missing(self, client, auth_headers):
        assert client.post("/fhir/Bundle", json=self._bundle(), headers=auth_headers).json()["id"]

    def test_existing_meta_is_kept(self, client, auth_headers):
        response = client.post("/fhir/Bundle", json=self._bundle(meta={"versionId": "3"}), headers=auth_headers)
        meta = response.json()["meta"]
        assert meta["versionId"] == "3"
        assert meta["lastUpdated"]

    def test_null_meta_is_replaced(self, client, auth_headers):
        bundle = {"resourceType": "Bundle", "type": "collection", "entry": [], "meta": None}
        response = client.post("/fhir/Bundle", json=bundle, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["meta"]["lastUpdated"]

    def test_non_object_meta_is_400(self, client, auth_headers):
        response = client.post("/fhir/Bundle", json=self._bundle(meta="stale"), headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["resourceType"] == "OperationOutcome"

    def test_wrong_resource_type(self, client, auth_headers):
        response = client.post("/fhir/Bundle", json=self._bundle(resourceType="Patient"), headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["resourceType"] == "OperationOutcome"

    def test_unknown_bundle_type(self, client, auth_headers):
        assert client.post("/fhir/Bundle", json=self._bundle(type="pile"), headers=auth_headers).status_code == 400

    def test_entries_need_a_resource(self, client, auth_headers):
        bundle = self._bundle(entry=[{"fullUrl": "urn:x"}])
        assert client.post("/fhir/Bundle", json=bundle, headers=auth_headers).status_code == 400

    def test_duplicate_id_conflicts(self, client, auth_headers):
        client.post("/fhir/Bundle", json=self._bundle(id="b-2"), headers=auth_headers)
        response = client.post("/fhir/Bundle", json=self._bundle(id="b-2"), headers=auth_headers)
        assert response.status_code == 409

    def test_requires_login(self, client):
        assert client.post("/fhir/Bundle", json=self._bundle()).status_code == 401

    def test_viewer_is_forbidden(self, client, db, viewer_headers):
        response = client.post("/fhir/Bundle", json=self._bundle(id="b-3"), headers=viewer_headers)
        assert response.status_code == 403
        assert db.query(models.StoredBundle).count() == 0

    def test_token_without_bundle_scope_is_forbidden(self, client, clinician):
        payload = {"sub": clinician.id, "roles": clinician.roles, "scope": "terminology.read",
                   "exp": 9999999999}
        token = jwt.encode(payload, ABHA_TOKEN_SECRET, algorithm="HS256")
        response = client.post("/fhir/Bundle", json=self._bundle(), headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403


class TestAuthentication:
    def test_login_returns_token(self, client):
        response = client.post("/auth/login", json={"abha_id": "14-2345-6789-0123"})
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["id"] == "abha-002"

    def test_unknown_abha_id(self, client):
        assert client.post("/auth/login", json={"abha_id": "00-0000-0000-0000"}).status_code == 401

    def test_me_with_bearer_token(self, client, auth_headers):
        response = client.get("/api/users/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["abha_id"] == "14-2345-6789-0123"

    def test_me_with_session_cookie_after_login(self, client):
        client.post("/auth/login", json={"abha_id": "14-1234-5678-9012"})
        assert client.get("/api/users/me").json()["id"] == "abha-001"
        client.post("/auth/logout")
        assert client.get("/api/users/me").status_code == 401

    def test_bad_token(self, client):
        response = client.get("/api/users/me", headers={"Authorization": "Bearer not.a.token"})
        assert response.status_code == 401


class TestDiagnosisSessions:
    def _payload(self, **overrides):
        payload = {
            "patient": {"id": "PAT-001", "name": "Asha Rao", "gender": "female"},
            "session_title": "Follow-up",
            "chief_complaint": "Indigestion",
            "entries": [
                {"namaste_code": "AY006", "clinical_notes": "After meals"},
                {"namaste_code": "AY004"},
            ],
        }
        payload.update(overrides)
        return payload

    def test_create_session(self, seeded_client, auth_headers):
        response = seeded_client.post("/diagnosis-sessions", json=self._payload(), headers=auth_headers)
        assert response.status_code == 201
        body = response.json()
        assert body["clinician_id"] == "abha-002"
        assert body["total_codes"] == 2
        assert [e["namaste_code"] for e in body["entries"]] == ["AY006", "AY004"]
        assert body["entries"][0]["icd11_code"] == "SM25.1"
        assert body["confidence_score"] == pytest.approx(0.94)

    def test_saved_bundle_is_dual_coded(self, seeded_client, auth_headers):
        session_id = seeded_client.post("/diagnosis-sessions", json=self._payload(), headers=auth_headers).json()["id"]
        bundle = seeded_client.get(f"/diagnosis-sessions/{session_id}/bundle").json()
        assert bundle["type"] == "transaction"
        condition = bundle["entry"][1]["resource"]
        assert [c["code"] for c in condition["code"]["coding"]] == ["AY006", "SM25.1"]
        assert condition["note"] == [{"text": "After meals"}]

    def test_unmapped_code_is_saved_without_icd(self, seeded_client, auth_headers, seeded_db):
        seeded_db.query(models.ConceptMap).filter_by(source_code="AY004").delete()
        seeded_db.commit()
        body = seeded_client.post("/diagnosis-sessions", json=self._payload(), headers=auth_headers).json()
        assert body["entries"][1]["icd11_code"] is None

    def test_requires_login(self, seeded_client):
        assert seeded_client.post("/diagnosis-sessions", json=self._payload()).status_code == 401

    def test_empty_entries_rejected(self, seeded_client, auth_headers):
        response = seeded_client.post("/diagnosis-sessions", json=self._payload(entries=[]), headers=auth_headers)
        assert response.status_code == 400

    def test_blank_patient_rejected(self, seeded_client, auth_headers):
        response = seeded_client.post("/diagnosis-sessions", json=self._payload(patient={"id": " "}),
                                      headers=auth_headers)
        assert response.status_code == 400

    def test_unknown_code_is_404(self, seeded_client, auth_headers):
        payload = self._payload(entries=[{"namaste_code": "AY999"}])
        assert seeded_client.post("/diagnosis-sessions", json=payload, headers=auth_headers).status_code == 404

    def test_bad_clinical_status_is_422(self, seeded_client, auth_headers):
        payload = self._payload(entries=[{"namaste_code": "AY006", "clinical_status": "cured"}])
        assert seeded_client.post("/diagnosis-sessions", json=payload, headers=auth_headers).status_code == 422

    def test_list_and_get(self, seeded_client, auth_headers):
        created = seeded_client.post("/diagnosis-sessions", json=self._payload(), headers=auth_headers).json()
        listed = seeded_client.get("/diagnosis-sessions", params={"patient_id": "PAT-001"}).json()
        assert [s["id"] for s in listed] == [created["id"]]
        assert seeded_client.get("/diagnosis-sessions", params={"patient_id": "OTHER"}).json() == []
        assert seeded_client.get(f"/diagnosis-sessions/{created['id']}").json()["total_codes"] == 2
        assert seeded_client.get("/diagnosis-sessions/9999").status_code == 404

    def test_viewer_is_forbidden(self, seeded_client, seeded_db, viewer_headers):
        response = seeded_client.post("/diagnosis-sessions", json=self._payload(), headers=viewer_headers)
        assert response.status_code == 403
        assert seeded_db.query(models.DiagnosisSession).count() == 0

    def test_icd_code_ignores_bridged_snomed_mapping(self, seeded_client, seeded_db, auth_headers):
        ingest_records(seeded_db, [{"code": "A001.1", "display": "Vata Prakopa"}], CodeSystem.NAMASTE)
        build_concept_map(seeded_db, NAMASTE_TO_ICD11_MMS_BRIDGED)
        build_concept_map(seeded_db, NAMASTE_TO_SNOMED_BRIDGE, target_system=CodeSystem.SNOMED)
        payload = self._payload(entries=[{"namaste_code": "A001.1"}])
        body = seeded_client.post("/diagnosis-sessions", json=payload, headers=auth_headers).json()
        assert body["entries"][0]["icd11_code"] == "QA02.Y"

    def test_rejected_forward_is_502_and_nothing_is_saved(self, seeded_client, auth_headers, seeded_db, fhir_server):
        fhir_server.append(lambda request: httpx.Response(500))
        response = seeded_client.post("/diagnosis-sessions", json=self._payload(), headers=auth_headers)
        assert response.status_code == 502
        assert seeded_db.query(models.DiagnosisSession).count() == 0

    def test_accepted_forward_saves(self, seeded_client, auth_headers, seeded_db, fhir_server):
        sent = []

        def accept(request):
            sent.append(json.loads(request.content))
            return httpx.Response(201)

        fhir_server.append(accept)
        response = seeded_client.post("/diagnosis-sessions", json=self._payload(), headers=auth_headers)
        assert response.status_code == 201
        assert sent and sent[0]["resourceType"] == "Bundle"
        assert seeded_db.query(models.DiagnosisSession).count() == 1


@pytest.fixture
def fhir_server(monkeypatch):
    """Routes forward_bundle's httpx.Client through a mock transport; tests append the handler."""
    handlers = []
    real_client = httpx.Client

    def client_factory(*args, **kwargs):
        return real_client(transport=httpx.MockTransport(lambda request: handlers[0](request)))

    monkeypatch.setattr(app_module, "FHIR_SUBMIT_URL", "http://fhir.test/Bundle")
    monkeypatch.setattr(app_module.httpx, "Client", client_factory)
    return handlers


class TestForwardBundle:
    def test_unreachable_server_is_502(self, fhir_server):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fhir_server.append(refuse)
        with pytest.raises(HTTPException) as exc_info:
            app_module.forward_bundle({"resourceType": "Bundle", "id": "b-1"})
        assert exc_info.value.status_code == 502

    def test_created_reply_is_accepted(self, fhir_server):
        fhir_server.append(lambda request: httpx.Response(201))
        assert app_module.forward_bundle({"resourceType": "Bundle", "id": "b-1"}) is None
