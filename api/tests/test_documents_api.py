import json

from sqlmodel import Session, select

from fieldsign.errors import StorageError
from fieldsign.events import verify_chain
from fieldsign import finalize as finalize_module
from fieldsign.models import Document, Event, Field as FieldModel, FinalArtifact
from fieldsign.routers import documents as documents_router
from fieldsign.utils import make_token
from conftest import SIMPLE_SIGNATURE_URI, make_pdf


def upload_document(client, pages=2, title="Lease"):
    response = client.post(
        "/api/documents",
        files={"file": ("lease.pdf", make_pdf(pages=pages), "application/pdf")},
        data={"title": title},
    )
    assert response.status_code == 200
    return response.json()


def add_signer(client, doc_id, name="Jane Roe", email="jane@example.com"):
    response = client.put(f"/api/documents/{doc_id}/signer", json={"name": name, "email": email})
    assert response.status_code == 200
    return response.json()


def put_fields(client, doc_id, fields):
    return client.put(f"/api/documents/{doc_id}/fields", json={"fields": fields})


def base_fields():
    return [
        {"type": "signature", "x": 72, "y": 600, "width": 160, "height": 40},
        {"type": "number", "label": "Quantity", "required": True, "x": 72, "y": 100, "width": 100, "height": 24},
        {"type": "checkbox", "label": "Add notes", "x": 72, "y": 140, "width": 20, "height": 20},
        {"type": "text", "label": "Notes", "x": 72, "y": 180, "width": 200, "height": 24, "page_number": 2},
    ]


def setup_document(client):
    doc = upload_document(client)
    signer = add_signer(client, doc["id"])
    created = put_fields(client, doc["id"], base_fields()).json()["fields"]
    sig_id, qty_id, box_id, notes_id = [int(f["id"]) for f in created]
    fields = base_fields()
    for field, field_id in zip(fields, (sig_id, qty_id, box_id, notes_id)):
        field["id"] = field_id
    fields[3]["conditional_logic"] = {
        "condition": {"type": "isChecked", "fieldId": str(box_id)},
        "action": {"type": "show"},
        "targetFieldId": str(notes_id),
    }
    fields.append({
        "type": "formula", "label": "Total", "validation_rule": f"${{{qty_id}}} * 12.5",
        "x": 300, "y": 100, "width": 100, "height": 24,
    })
    response = put_fields(client, doc["id"], fields)
    assert response.status_code == 200
    ids = {"signature": sig_id, "quantity": qty_id, "checkbox": box_id, "notes": notes_id}
    ids["total"] = int(response.json()["fields"][-1]["id"])
    return doc, signer, ids


def test_upload_counts_pages_and_stores_original(client, mock_storage):
    doc = upload_document(client, pages=3)
    assert doc["page_count"] == 3
    assert doc["status"] == "DRAFT"
    assert doc["s3_key"] in mock_storage
    pdf = client.get(f"/api/documents/{doc['id']}/pdf")
    assert pdf.status_code == 200
    assert pdf.content == mock_storage[doc["s3_key"]]


def test_upload_rejects_non_pdf(client):
    response = client.post("/api/documents", files={"file": ("x.pdf", b"plain text", "application/pdf")})
    assert response.status_code == 400


def test_fields_are_reconciled_and_resolved(client):
    doc, signer, ids = setup_document(client)
    body = client.get(f"/api/documents/{doc['id']}/fields").json()
    by_id = {int(f["id"]): f for f in body["fields"]}
    assert by_id[ids["signature"]]["signer_id"] == str(signer["id"])
    assert by_id[ids["quantity"]]["signer_id"] == str(signer["id"])
    assert by_id[ids["checkbox"]]["signer_id"] is None
    assert by_id[ids["notes"]]["is_visible"] is False
    assert by_id[ids["total"]]["value"] == "0"

    visibility = client.get(f"/api/documents/{doc['id']}/fields/{ids['notes']}/visibility")
    assert visibility.json() == {"field_id": ids["notes"], "visible": False}


def test_formula_preview(client):
    doc, _, ids = setup_document(client)
    response = client.post(f"/api/documents/{doc['id']}/formula", json={"expression": "IF(1 > 2, 'a', 'b')"})
    assert response.json() == {"result": "b"}
    response = client.post(f"/api/documents/{doc['id']}/formula", json={"expression": "nope("})
    assert response.json() == {"result": "Error"}


def test_field_on_missing_page_is_rejected(client):
    doc = upload_document(client, pages=1)
    response = put_fields(client, doc["id"], [
        {"type": "text", "x": 0, "y": 0, "width": 50, "height": 20, "page_number": 2},
    ])
    assert response.status_code == 422
    assert response.json()["page_number"] == 2


def test_deleting_signer_unbinds_fields(client, test_engine):
    doc, signer, ids = setup_document(client)
    assert client.delete(f"/api/documents/{doc['id']}/signer").status_code == 204
    with Session(test_engine) as session:
        fields = session.exec(select(FieldModel).where(FieldModel.document_id == doc["id"])).all()
        assert all(f.signer_id is None for f in fields)
    new_signer = add_signer(client, doc["id"], name="John Doe", email="john@example.com")
    body = client.get(f"/api/documents/{doc['id']}/fields").json()
    bound = {int(f["id"]): f["signer_id"] for f in body["fields"]}
    assert bound[ids["signature"]] == str(new_signer["id"])


def test_signing_flow_seals_document(client, mock_storage, test_engine):
    doc, signer, ids = setup_document(client)
    sent = client.post(f"/api/documents/{doc['id']}/send")
    assert sent.status_code == 200
    token = sent.json()["token"]
    assert sent.json()["link"].endswith(token)

    session_view = client.get(f"/api/sign/{token}")
    assert session_view.status_code == 200
    assert session_view.json()["signer"]["status"] == "VIEWED"

    missing = client.post(f"/api/sign/{token}/complete", json={"values": {str(ids["signature"]): SIMPLE_SIGNATURE_URI}})
    assert missing.status_code == 422
    assert str(ids["quantity"]) in missing.json()["errors"]

    saved = client.post(f"/api/sign/{token}/save", json={"values": {str(ids["quantity"]): "4"}})
    assert saved.status_code == 200
    total = next(f for f in saved.json()["fields"] if int(f["id"]) == ids["total"])
    assert total["value"] == "50"

    done = client.post(f"/api/sign/{token}/complete", json={"values": {
        str(ids["signature"]): SIMPLE_SIGNATURE_URI,
        str(ids["checkbox"]): "true",
        str(ids["notes"]): "Leave at the door",
    }})
    assert done.status_code == 200
    assert done.json()["sealed"] is True

    final = client.get(f"/api/sign/{token}/final-pdf")
    assert final.status_code == 200
    assert final.content.startswith(b"%PDF")
    assert client.get(f"/api/documents/{doc['id']}/final-pdf").content == final.content

    with Session(test_engine) as session:
        stored = session.get(Document, doc["id"])
        assert stored.status == "COMPLETED"
        artifact = session.exec(select(FinalArtifact).where(FinalArtifact.document_id == doc["id"])).one()
        audit = json.loads(mock_storage[artifact.s3_key_audit_json])
        assert audit["sha256_final"] == artifact.sha256_final
        events = session.exec(select(Event).where(Event.document_id == doc["id"]).order_by(Event.id)).all()
        assert [e.type for e in events][-2:] == ["completed", "sealed"]
        assert verify_chain(events)

    again = client.post(f"/api/sign/{token}/complete", json={"values": {}})
    assert again.status_code == 409


def test_complete_resumes_a_failed_seal(client, mock_storage, monkeypatch, test_engine):
    doc, signer, ids = setup_document(client)
    token = client.post(f"/api/documents/{doc['id']}/send").json()["token"]
    stored_put = finalize_module.put_bytes

    def failing_put(key, data, content_type="application/octet-stream"):
        raise StorageError(f"failed to upload {key} after 3 attempts: SlowDown", key=key, retryable=True, attempts=3)

    monkeypatch.setattr(finalize_module, "put_bytes", failing_put)
    values = {
        str(ids["signature"]): SIMPLE_SIGNATURE_URI,
        str(ids["quantity"]): "2",
    }
    assert client.post(f"/api/sign/{token}/complete", json={"values": values}).status_code == 502
    with Session(test_engine) as session:
        assert session.get(Document, doc["id"]).status == "PENDING"

    monkeypatch.setattr(finalize_module, "put_bytes", stored_put)
    retry = client.post(f"/api/sign/{token}/complete", json={"values": {}})
    assert retry.status_code == 200
    assert retry.json()["sealed"] is True

    with Session(test_engine) as session:
        assert session.get(Document, doc["id"]).status == "COMPLETED"
        artifact = session.exec(select(FinalArtifact).where(FinalArtifact.document_id == doc["id"])).one()
        assert artifact.s3_key_pdf in mock_storage

    assert client.post(f"/api/sign/{token}/complete", json={"values": {}}).status_code == 409


def test_decline(client):
    doc, signer, _ = setup_document(client)
    token = client.post(f"/api/documents/{doc['id']}/send").json()["token"]
    response = client.post(f"/api/sign/{token}/decline", json={"reason": "wrong name"})
    assert response.json()["status"] == "DECLINED"
    assert client.post(f"/api/sign/{token}/save", json={"values": {}}).status_code == 409


def test_bad_token_is_not_found(client):
    assert client.get("/api/sign/not-a-token").status_code == 404
    forged = make_token({"signer_id": 999, "document_id": 1})
    assert client.get(f"/api/sign/{forged}").status_code == 404


def test_storage_failure_maps_to_bad_gateway(client, monkeypatch):
    doc = upload_document(client)

    def failing_get(key):
        raise StorageError(f"failed to download {key} after 3 attempts: SlowDown", key=key, retryable=True, attempts=3)

    monkeypatch.setattr(documents_router, "get_bytes", failing_get)
    response = client.get(f"/api/documents/{doc['id']}/pdf")
    assert response.status_code == 502
    assert "after 3 attempts" in response.json()["detail"]


def test_missing_stored_file_is_not_found(client, mock_storage):
    doc = upload_document(client)
    mock_storage.clear()
    assert client.get(f"/api/documents/{doc['id']}/pdf").status_code == 404
