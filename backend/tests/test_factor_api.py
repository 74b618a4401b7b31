import csv
import io
import json
import zipfile
from decimal import Decimal

from conftest import HEADERS, USER_ID
from factoring import models

BASE = "/api/finance/factor"


def _create_operation(client, factor_id, **overrides):
    payload = {"factor_id": factor_id, "issue_date": "2026-01-01", "reference": "LOTE-API"}
    payload.update(overrides)
    resp = client.post(f"{BASE}/operations", json=payload, headers=HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _add_item(client, operation_id, installment_id, action="discount", **extra):
    resp = client.post(
        f"{BASE}/operations/{operation_id}/items",
        json={"action_type": action, "ar_installment_id": installment_id, **extra},
        headers=HEADERS,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _sent_operation(client, seed_factor, seed_installment):
    factor = seed_factor()
    inst = seed_installment()
    op = _create_operation(client, factor.id)
    item = _add_item(client, op["id"], inst.id)
    resp = client.post(f"{BASE}/operations/{op['id']}/send", headers=HEADERS)
    assert resp.status_code == 200, resp.text
    return factor, inst, item, resp.json()


def test_missing_company_header_is_unauthorized(client):
    resp = client.get(f"{BASE}/operations")
    assert resp.status_code == 401


def test_malformed_company_header_is_bad_request(client):
    resp = client.get(f"{BASE}/operations", headers={"X-Company-ID": "not-a-uuid"})
    assert resp.status_code == 400
    assert "X-Company-ID" in resp.json()["detail"]


def test_create_and_list_factors(client):
    resp = client.post(
        f"{BASE}/factors",
        json={"name": "  Factor Delta ", "default_interest_rate": "2.5", "default_grace_days": 3},
        headers=HEADERS,
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["name"] == "Factor Delta"
    assert body["created_by"] == USER_ID
    assert Decimal(body["default_interest_rate"]) == Decimal("2.5")

    listed = client.get(f"{BASE}/factors", headers=HEADERS).json()["items"]
    assert [f["id"] for f in listed] == [body["id"]]


def test_factor_rate_bounds_are_validated(client):
    resp = client.post(
        f"{BASE}/factors",
        json={"name": "Factor X", "default_fee_rate": "101", "default_grace_days": 400},
        headers=HEADERS,
    )
    assert resp.status_code == 422


def test_operation_input_validation(client, seed_factor):
    factor = seed_factor()
    bad_date = client.post(
        f"{BASE}/operations",
        json={"factor_id": factor.id, "issue_date": "01/02/2026"},
        headers=HEADERS,
    )
    assert bad_date.status_code == 422

    bad_factor = client.post(
        f"{BASE}/operations",
        json={"factor_id": "abc", "issue_date": "2026-01-01"},
        headers=HEADERS,
    )
    assert bad_factor.status_code == 422


def test_patch_rejects_unknown_fields(client, seed_factor):
    op = _create_operation(client, seed_factor().id)
    resp = client.patch(f"{BASE}/operations/{op['id']}", json={"status": "completed"}, headers=HEADERS)
    assert resp.status_code == 422

    resp = client.patch(f"{BASE}/operations/{op['id']}", json={"notes": "revisado"}, headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["notes"] == "revisado"
    assert resp.json()["status"] == "draft"


def test_unknown_operation_maps_to_404_with_code(client):
    resp = client.get(f"{BASE}/operations/00000000-0000-4000-8000-00000000abcd", headers=HEADERS)
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Operação não encontrada", "code": "OPERATION_NOT_FOUND"}


def test_full_lifecycle_over_http(client, db_session, seed_factor, seed_installment):
    factor, inst, item, sent = _sent_operation(client, seed_factor, seed_installment)
    op_id = sent["operation"]["id"]
    assert sent["operation"]["status"] == "sent_to_factor"
    assert sent["version"]["version_number"] == 1
    assert Decimal(sent["version"]["costs_amount"]) == Decimal("121.67")

    resp = client.post(
        f"{BASE}/operations/{op_id}/responses",
        json={
            "version_id": sent["version"]["id"],
            "responses": [
                {
                    "operation_item_id": item["id"],
                    "response_status": "accepted",
                    "fee_amount": "10.00",
                    "interest_amount": "15.00",
                }
            ],
        },
        headers=HEADERS,
    )
    assert resp.status_code == 200, resp.text
    assert Decimal(resp.json()["responses"][0]["total_cost_amount"]) == Decimal("25.00")

    resp = client.post(f"{BASE}/operations/{op_id}/conclude", headers=HEADERS)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["operation"]["status"] == "completed"
    assert body["idempotent"] is False
    assert sorted(p["posting_type"] for p in body["postings"]) == ["ap_factor_cost", "ar_discount_settlement"]

    again = client.post(f"{BASE}/operations/{op_id}/conclude", json={}, headers=HEADERS)
    assert again.status_code == 200
    assert again.json()["idempotent"] is True

    detail = client.get(f"{BASE}/operations/{op_id}", headers=HEADERS).json()
    assert len(detail["postings"]) == 2
    assert detail["factor"]["id"] == factor.id

    held = client.get(f"{BASE}/installments/with-factor", params={"factorId": factor.id}, headers=HEADERS)
    assert [i["id"] for i in held.json()["items"]] == [inst.id]

    listed = client.get(f"{BASE}/operations", params={"status": "completed"}, headers=HEADERS).json()["items"]
    assert [o["id"] for o in listed] == [op_id]
    assert listed[0]["factor"]["name"] == factor.name

    db_session.expire_all()
    assert db_session.query(models.FactorOperationPosting).count() == 2


def test_cancel_completed_operation_returns_conflict(client, seed_factor, seed_installment):
    _, _, item, sent = _sent_operation(client, seed_factor, seed_installment)
    op_id = sent["operation"]["id"]
    client.post(
        f"{BASE}/operations/{op_id}/responses",
        json={
            "version_id": sent["version"]["id"],
            "responses": [{"operation_item_id": item["id"], "response_status": "accepted"}],
        },
        headers=HEADERS,
    )
    assert client.post(f"{BASE}/operations/{op_id}/conclude", headers=HEADERS).status_code == 200

    resp = client.post(f"{BASE}/operations/{op_id}/cancel", json={"reason": "tarde demais"}, headers=HEADERS)
    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "INVALID_STATUS_TRANSITION"
    assert body["details"] == {"from_status": "completed", "to_status": "cancelled"}


def test_conclude_without_responses_returns_missing_item_response(client, seed_factor, seed_installment):
    _, _, item, sent = _sent_operation(client, seed_factor, seed_installment)
    resp = client.post(f"{BASE}/operations/{sent['operation']['id']}/conclude", headers=HEADERS)
    assert resp.status_code == 422
    assert resp.json()["code"] == "MISSING_ITEM_RESPONSE"
    assert resp.json()["details"]["operation_item_ids"] == [item["id"]]


def test_adjusted_response_requires_new_terms(client, seed_factor, seed_installment):
    _, _, item, sent = _sent_operation(client, seed_factor, seed_installment)
    resp = client.post(
        f"{BASE}/operations/{sent['operation']['id']}/responses",
        json={
            "version_id": sent["version"]["id"],
            "responses": [{"operation_item_id": item["id"], "response_status": "adjusted"}],
        },
        headers=HEADERS,
    )
    assert resp.status_code == 422


def test_ineligible_item_returns_code(client, seed_factor, seed_installment):
    factor = seed_factor()
    op = _create_operation(client, factor.id)
    inst = seed_installment()
    resp = client.post(
        f"{BASE}/operations/{op['id']}/items",
        json={"action_type": "buyback", "ar_installment_id": inst.id},
        headers=HEADERS,
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "ITEM_NOT_ELIGIBLE"


def test_remove_item_and_list_open_installments(client, seed_factor, seed_installment):
    op = _create_operation(client, seed_factor().id)
    inst = seed_installment(document_number="NF-7788")
    item = _add_item(client, op["id"], inst.id)

    resp = client.delete(f"{BASE}/operations/{op['id']}/items/{item['id']}", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["id"] == item["id"]

    found = client.get(f"{BASE}/installments/open", params={"q": "7788"}, headers=HEADERS).json()["items"]
    assert [i["id"] for i in found] == [inst.id]
    assert found[0]["ar_title"]["document_number"] == "NF-7788"


def test_package_zip_is_deterministic(client, seed_factor, seed_installment):
    _, _, item, sent = _sent_operation(client, seed_factor, seed_installment)
    url = f"{BASE}/operations/{sent['operation']['id']}/downloads/package-zip"

    first = client.get(url, headers=HEADERS)
    second = client.get(url, headers=HEADERS)

    assert first.status_code == 200
    assert first.headers["content-type"] == "application/zip"
    assert first.headers["content-disposition"] == 'attachment; filename="factor_operacao_1.zip"'
    assert first.headers["cache-control"] == "no-store"
    assert first.content == second.content

    zf = zipfile.ZipFile(io.BytesIO(first.content))
    assert zf.namelist() == ["operacao_1_snapshot.json", "operacao_1_itens.csv", "README.txt"]

    snapshot = json.loads(zf.read("operacao_1_snapshot.json"))
    assert snapshot["operation"]["status"] == "sent_to_factor"

    rows = list(csv.DictReader(io.StringIO(zf.read("operacao_1_itens.csv").decode("utf-8"))))
    assert len(rows) == 1
    assert rows[0]["ar_installment_id"] == item["ar_installment_id"]
    assert rows[0]["estimated_cost_amount"] == "121.67"


def test_healthcheck(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert client.get("/api/health/db").json() == {"status": "ok"}
