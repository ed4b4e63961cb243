# Overview: Pytest coverage for the document, dashboard and system HTTP endpoints.

"""
Document API Tests

Exercises the JSON surface end to end through the Flask test client:
status codes for every domain error, the optimistic lock round trip via
`modified_at`, and read caching of list pages and dashboard numbers.
"""

from unittest.mock import patch

import pytest

from backoffice.services.document_service import DocumentService
from backoffice.services.errors import PartialUpdateFailure, SequenceGenerationFailure
from backoffice.time_utils import utcnow


pytestmark = pytest.mark.usefixtures("db_session")


def _create(client, kind="quotation", **body):
    body.setdefault("display_name", "Acme Corp")
    response = client.post(f"/api/documents/{kind}", json=body)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["document"]


class TestCreate:
    def test_create_returns_server_assigned_fields(self, client):
        doc = _create(client, items=[
            {"name": "Stage", "details": [{"description": "Truss", "unit_price_cents": 1500, "quantity": "2"}]},
            {"name": "Flat fee", "total_cents": 1000},
        ], remarks=[{"text": "deposit first"}])

        year = utcnow().year
        assert doc["display_id"] == f"QTN-{year}-0001"
        assert doc["issued_year"] == year
        assert doc["status"] == "draft"
        assert doc["lifecycle"] == "active"
        assert doc["total_cents"] == 4000
        assert [i["total_cents"] for i in doc["items"]] == [3000, 1000]
        assert doc["items"][0]["details"][0]["amount_cents"] == 3000
        assert doc["remarks"][0]["text"] == "deposit first"
        assert doc["modified_at"].endswith("Z")

    def test_duplicate_name_comes_back_suffixed(self, client):
        _create(client)
        assert _create(client)["display_name"] == "Acme Corp 02"

    def test_unknown_kind_is_404(self, client):
        response = client.post("/api/documents/receipt", json={"display_name": "Acme"})
        assert response.status_code == 404
        assert response.get_json()["code"] == "NOT_FOUND"

    def test_unknown_field_is_400(self, client):
        response = client.post("/api/documents/quotation", json={"display_name": "Acme", "display_id": "QTN-1"})
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_quantity_beyond_two_places_is_400(self, client):
        response = client.post("/api/documents/quotation", json={
            "display_name": "Acme",
            "items": [{"name": "Stage", "details": [{"unit_price_cents": 1000, "quantity": "1.555"}]}],
        })
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_sequence_failure_is_503(self, client):
        failure = SequenceGenerationFailure("Could not allocate a unique display id after 3 attempts")
        with patch.object(DocumentService, "create_document", side_effect=failure):
            response = client.post("/api/documents/quotation", json={"display_name": "Acme"})
        assert response.status_code == 503
        assert response.get_json()["code"] == "SEQUENCE_GENERATION_FAILED"

    def test_storage_failure_is_500(self, client):
        with patch.object(DocumentService, "create_document", side_effect=PartialUpdateFailure("Failed to create")):
            response = client.post("/api/documents/quotation", json={"display_name": "Acme"})
        assert response.status_code == 500
        assert response.get_json()["code"] == "UPDATE_FAILED"

    def test_unexpected_error_is_generic_500(self, client):
        with patch.object(DocumentService, "create_document", side_effect=RuntimeError("boom")):
            response = client.post("/api/documents/quotation", json={"display_name": "Acme"})
        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error", "code": "INTERNAL_ERROR"}


class TestUpdate:
    def test_stale_write_is_409(self, client):
        doc = _create(client, items=[{"name": "Stage", "total_cents": 100}])
        url = f"/api/documents/quotation/{doc['id']}"
        token = doc["modified_at"]

        first = client.put(url, json={"notes": "first", "last_known_modified_at": token})
        assert first.status_code == 200
        assert first.get_json()["document"]["modified_at"] != token

        second = client.put(url, json={"notes": "second", "last_known_modified_at": token})
        assert second.status_code == 409
        assert second.get_json()["code"] == "STALE_WRITE"

        assert client.get(url).get_json()["document"]["notes"] == "first"

    def test_echoed_token_allows_consecutive_saves(self, client):
        doc = _create(client)
        url = f"/api/documents/quotation/{doc['id']}"

        token = doc["modified_at"]
        for note in ("one", "two", "three"):
            response = client.put(url, json={"notes": note, "last_known_modified_at": token})
            assert response.status_code == 200
            token = response.get_json()["document"]["modified_at"]

    def test_foreign_item_id_is_422(self, client):
        other = _create(client, display_name="Other", items=[{"name": "Theirs"}])
        doc = _create(client, items=[{"name": "Mine"}])

        response = client.put(f"/api/documents/quotation/{doc['id']}", json={
            "items": [{"id": other["items"][0]["id"], "name": "Stolen"}],
        })

        assert response.status_code == 422
        assert response.get_json()["code"] == "RECONCILIATION_INTEGRITY"
        stored = client.get(f"/api/documents/quotation/{doc['id']}").get_json()["document"]
        assert [i["name"] for i in stored["items"]] == ["Mine"]

    def test_missing_document_is_404(self, client):
        response = client.get("/api/documents/quotation/424242")
        assert response.status_code == 404

    def test_status_patch(self, client):
        doc = _create(client)
        url = f"/api/documents/quotation/{doc['id']}/status"

        assert client.patch(url, json={"status": "shipped"}).status_code == 400

        response = client.patch(url, json={"status": "Accepted"})
        assert response.status_code == 200
        assert response.get_json()["document"]["status"] == "accepted"


class TestLifecycle:
    def test_delete_hides_from_default_listing(self, client):
        doc = _create(client)

        response = client.delete(f"/api/documents/quotation/{doc['id']}")
        assert response.status_code == 200
        assert response.get_json()["document"]["lifecycle"] == "deleted"

        assert client.get("/api/documents/quotation").get_json()["count"] == 0
        listed = client.get("/api/documents/quotation?include_deleted=true").get_json()
        assert [d["id"] for d in listed["items"]] == [doc["id"]]

    def test_editing_deleted_document_is_409(self, client):
        doc = _create(client)
        client.delete(f"/api/documents/quotation/{doc['id']}")

        response = client.put(f"/api/documents/quotation/{doc['id']}", json={"notes": "x"})
        assert response.status_code == 409
        assert response.get_json()["code"] == "INVALID_TRANSITION"

    def test_restore(self, client):
        doc = _create(client)
        client.delete(f"/api/documents/quotation/{doc['id']}")

        response = client.post(f"/api/documents/quotation/{doc['id']}/restore")
        assert response.status_code == 200
        assert response.get_json()["document"]["lifecycle"] == "active"


class TestDerived:
    def test_copy(self, client):
        doc = _create(client, items=[{"name": "Stage", "total_cents": 100}])

        response = client.post(f"/api/documents/quotation/{doc['id']}/copy")

        assert response.status_code == 201
        copy = response.get_json()["document"]
        assert copy["display_name"] == "Acme Corp - Copy"
        assert copy["source_document_id"] == doc["id"]
        assert copy["id"] != doc["id"]

    def test_generate_invoice_from_draft_is_409(self, client):
        doc = _create(client)
        response = client.post(f"/api/documents/quotation/{doc['id']}/generate-invoice")
        assert response.status_code == 409

    def test_generate_invoice_only_for_quotations(self, client):
        doc = _create(client, kind="invoice")
        response = client.post(f"/api/documents/invoice/{doc['id']}/generate-invoice")
        assert response.status_code == 404

    def test_generate_invoice_then_repeat(self, client):
        doc = _create(client, items=[{"name": "Stage", "total_cents": 500000}])
        client.patch(f"/api/documents/quotation/{doc['id']}/status", json={"status": "accepted"})
        url = f"/api/documents/quotation/{doc['id']}/generate-invoice"

        first = client.post(url)
        second = client.post(url)

        assert first.status_code == 201
        assert first.get_json()["created"] is True
        assert second.status_code == 200
        assert second.get_json()["created"] is False
        assert second.get_json()["document"]["id"] == first.get_json()["document"]["id"]
        assert first.get_json()["document"]["display_id"].startswith("INV-")

    def test_generate_quotation_from_final_planning(self, client):
        planning = _create(client, kind="planning", display_name="Summer Fair", items=[
            {"name": "Stage", "total_cents": 120000},
        ])
        url = f"/api/documents/planning/{planning['id']}/generate-quotation"

        assert client.post(url).status_code == 409
        client.patch(f"/api/documents/planning/{planning['id']}/status", json={"status": "final"})

        first = client.post(url)
        second = client.post(url)

        assert first.status_code == 201
        quotation = first.get_json()["document"]
        assert quotation["display_id"].startswith("QTN-")
        assert quotation["source_document_id"] == planning["id"]
        assert quotation["items"][0]["details"][0]["amount_cents"] == 120000
        assert second.status_code == 200
        assert second.get_json()["created"] is False
        assert second.get_json()["document"]["id"] == quotation["id"]

    def test_generate_quotation_only_for_plannings(self, client):
        doc = _create(client)
        response = client.post(f"/api/documents/quotation/{doc['id']}/generate-quotation")
        assert response.status_code == 404
        assert response.get_json()["code"] == "NOT_FOUND"

    def test_create_expense_from_paid_invoice(self, client):
        invoice = _create(client, kind="invoice", items=[{"name": "Crew", "total_cents": 8000}])
        url = f"/api/documents/invoice/{invoice['id']}/create-expense"

        unpaid = client.post(url)
        assert unpaid.status_code == 409
        assert unpaid.get_json()["code"] == "INVALID_TRANSITION"

        client.patch(f"/api/documents/invoice/{invoice['id']}/status", json={"status": "paid"})
        first = client.post(url)
        second = client.post(url)

        assert first.status_code == 201
        expense = first.get_json()["document"]
        assert expense["kind"] == "expense"
        assert expense["total_cents"] == 8000
        assert second.status_code == 200
        assert second.get_json()["document"]["id"] == expense["id"]

    def test_create_expense_only_for_invoices(self, client):
        doc = _create(client)
        assert client.post(f"/api/documents/quotation/{doc['id']}/create-expense").status_code == 404

    def test_finalize_ticket(self, client):
        ticket = _create(client, kind="paragon", display_name="Wedding Hall", items=[
            {"name": "Decor", "total_cents": 20000},
        ])

        response = client.post(f"/api/documents/paragon/{ticket['id']}/finalize", json={
            "last_known_modified_at": ticket["modified_at"],
        })

        assert response.status_code == 200
        body = response.get_json()
        assert body["document"]["status"] == "final"
        assert body["expense"]["kind"] == "expense"
        assert body["expense"]["total_cents"] == 20000

        again = client.post(f"/api/documents/paragon/{ticket['id']}/finalize")
        assert again.status_code == 409


class TestNameConflicts:
    def test_reports_taken_names_and_suggestions(self, client):
        _create(client)

        response = client.post("/api/documents/quotation/name-conflicts", json={"names": ["Acme Corp", "Gamma"]})

        assert response.status_code == 200
        assert response.get_json()["conflicts"] == {
            "Acme Corp": {"taken": True, "suggested": "Acme Corp 02"},
            "Gamma": {"taken": False, "suggested": "Gamma"},
        }

    def test_names_must_be_strings(self, client):
        response = client.post("/api/documents/quotation/name-conflicts", json={"names": [1, 2]})
        assert response.status_code == 400


class TestListing:
    def test_paging_fields(self, client):
        for n in range(3):
            _create(client, kind="invoice", display_name=f"Client {n}")

        body = client.get("/api/documents/invoice?page=2&page_size=2").get_json()

        assert body["count"] == 3
        assert body["page"] == 2
        assert body["page_size"] == 2
        assert [d["display_name"] for d in body["items"]] == ["Client 0"]

    def test_bad_page_is_400(self, client):
        assert client.get("/api/documents/invoice?page=0").status_code == 400

    def test_list_pages_are_cached_and_dropped_on_write(self, client, memory_cache):
        _create(client, kind="invoice", display_name="First")

        assert client.get("/api/documents/invoice").get_json()["count"] == 1
        assert "invoice:list:all:active:newest:1:25" in memory_cache.store

        _create(client, kind="invoice", display_name="Second")

        assert "invoice:list:all:active:newest:1:25" not in memory_cache.store
        assert client.get("/api/documents/invoice").get_json()["count"] == 2


class TestDashboard:
    def test_summary_is_cached_until_a_write(self, client, memory_cache):
        year = utcnow().year
        _create(client, kind="invoice", items=[{"name": "Stage", "total_cents": 1000}])

        first = client.get(f"/api/dashboard/{year}").get_json()
        second = client.get(f"/api/dashboard/{year}").get_json()

        assert first["cached"] is False
        assert second["cached"] is True
        assert first["kinds"]["invoice"] == {
            "count": 1,
            "total_cents": 1000,
            "by_status": {"draft": {"count": 1, "total_cents": 1000}},
        }

        _create(client, kind="invoice", display_name="Beta Ltd")
        third = client.get(f"/api/dashboard/{year}").get_json()

        assert third["cached"] is False
        assert third["kinds"]["invoice"]["count"] == 2

    def test_invalid_year_is_400(self, client):
        assert client.get("/api/dashboard/0").status_code == 400


class TestSystem:
    def test_health_without_cache(self, client):
        response = client.get("/api/health")
        body = response.get_json()

        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["checks"]["cache"]["details"] == {"enabled": False}

    def test_version(self, client):
        body = client.get("/api/version").get_json()
        assert body["sequence_strategy"] == "counter"
