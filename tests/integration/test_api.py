"""HTTP surface tests: status codes, error bodies and round trips through the services."""

from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio

HEADERS = {"X-Tenant-ID": "tenant-a", "X-Actor-ID": "dispatcher-1"}


async def create_invoice(client: AsyncClient, loads, **overrides) -> dict:
    payload = {
        "customer_name": "Acme Foods",
        "load_ids": [str(load.load_id) for load in loads],
        "issue_date": "2025-03-12",
    }
    payload.update(overrides)
    response = await client.post("/api/v1/invoices", json=payload, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "healthy"

    async def test_ready_and_live(self, client):
        assert (await client.get("/ready")).json() == {"status": "ready"}
        assert (await client.get("/live")).json() == {"status": "alive"}


class TestTenantHeader:
    async def test_missing_tenant_header(self, client):
        response = await client.post("/api/v1/sequences/invoice/next", json={"year": 2025})
        assert response.status_code == 400


class TestSequences:
    async def test_next_and_preview(self, client):
        response = await client.post(
            "/api/v1/sequences/invoice/next", json={"year": 2025}, headers=HEADERS
        )
        assert response.status_code == 201
        assert response.json() == {
            "kind": "invoice",
            "year": 2025,
            "seq": 1000,
            "number": "INV-2025-1000",
        }

        preview = await client.get(
            "/api/v1/sequences/invoice/preview", params={"year": 2025}, headers=HEADERS
        )
        assert preview.json()["number"] == "INV-2025-1001"

    async def test_unknown_kind(self, client):
        response = await client.post(
            "/api/v1/sequences/widget/next", json={"year": 2025}, headers=HEADERS
        )
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_FAILED"

    async def test_resync(self, client):
        response = await client.post(
            "/api/v1/sequences/invoice/resync",
            json={"year": 2025, "existing_numbers": ["INV-2025-1041", "INV-2025-1007"]},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["next_number"] == 1042


class TestInvoices:
    async def test_create_and_pay(self, client, delivered_loads):
        invoice = await create_invoice(client, delivered_loads)
        assert invoice["invoice_number"] == "INV-2025-1000"
        assert Decimal(invoice["amount"]) == Decimal("2150.00")
        assert invoice["status"] == "draft"
        assert len(invoice["lines"]) == 2

        response = await client.post(
            f"/api/v1/invoices/{invoice['invoice_id']}/payments",
            json={"amount": "2150.00", "method": "ach", "expected_version": invoice["version"]},
            headers=HEADERS,
        )
        assert response.status_code == 201, response.text
        paid = response.json()
        assert paid["status"] == "paid"
        assert paid["version"] == invoice["version"] + 1

        fetched = await client.get(f"/api/v1/invoices/{invoice['invoice_id']}", headers=HEADERS)
        assert Decimal(fetched.json()["paid_amount"]) == Decimal("2150.00")

    async def test_overpayment_body(self, client, delivered_loads):
        invoice = await create_invoice(client, delivered_loads)
        response = await client.post(
            f"/api/v1/invoices/{invoice['invoice_id']}/payments",
            json={"amount": "3000.00"},
            headers=HEADERS,
        )
        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "INVALID_PAYMENT"
        assert Decimal(body["max_amount"]) == Decimal("2171.50")

    async def test_stale_version_is_conflict(self, client, delivered_loads):
        invoice = await create_invoice(client, delivered_loads)
        response = await client.post(
            f"/api/v1/invoices/{invoice['invoice_id']}/payments",
            json={"amount": "10.00", "expected_version": invoice["version"] + 5},
            headers=HEADERS,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "CONCURRENT_MODIFICATION"

    async def test_already_invoiced_lists_errors(self, client, delivered_loads):
        await create_invoice(client, delivered_loads)
        response = await client.post(
            "/api/v1/invoices",
            json={
                "customer_name": "Acme Foods",
                "load_ids": [str(delivered_loads[0].load_id)],
                "issue_date": "2025-03-12",
            },
            headers=HEADERS,
        )
        assert response.status_code == 422
        assert any("already have invoices" in error for error in response.json()["errors"])

    async def test_send_twice_is_conflict(self, client, delivered_loads):
        invoice = await create_invoice(client, delivered_loads)
        url = f"/api/v1/invoices/{invoice['invoice_id']}/send"
        assert (await client.post(url, headers=HEADERS)).status_code == 200
        response = await client.post(url, headers=HEADERS)
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATE_TRANSITION"

    async def test_unknown_invoice(self, client):
        response = await client.get(f"/api/v1/invoices/{uuid4()}", headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_other_tenant_sees_nothing(self, client, delivered_loads):
        invoice = await create_invoice(client, delivered_loads)
        response = await client.get(
            f"/api/v1/invoices/{invoice['invoice_id']}", headers={"X-Tenant-ID": "tenant-b"}
        )
        assert response.status_code == 404

    async def test_aging(self, client, delivered_loads):
        invoice = await create_invoice(client, delivered_loads)
        await client.post(f"/api/v1/invoices/{invoice['invoice_id']}/send", headers=HEADERS)
        response = await client.get(
            "/api/v1/invoices/aging", params={"as_of": "2025-07-20"}, headers=HEADERS
        )
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["days_90_plus"]) == Decimal("2150.00")
        assert Decimal(body["total"]) == Decimal("2150.00")


class TestSettlements:
    def payload(self, driver, loads, **overrides) -> dict:
        values = {
            "driver_id": str(driver.driver_id),
            "load_ids": [str(load.load_id) for load in loads],
            "period_start": "2025-03-10",
            "period_end": "2025-03-16",
            "deductions": {"insurance": "100"},
        }
        values.update(overrides)
        return values

    async def test_preview(self, client, driver, delivered_loads):
        response = await client.post(
            "/api/v1/settlements/preview",
            json=self.payload(driver, delivered_loads),
            headers=HEADERS,
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert Decimal(body["gross_pay"]) == Decimal("1760")
        assert Decimal(body["net_pay"]) == Decimal("1660")
        assert len(body["loads"]) == 2

    async def test_create_and_void(self, client, driver, delivered_loads):
        response = await client.post(
            "/api/v1/settlements", json=self.payload(driver, delivered_loads), headers=HEADERS
        )
        assert response.status_code == 201, response.text
        settlement = response.json()
        assert settlement["settlement_number"] == "SET-2025-1000"

        url = f"/api/v1/settlements/{settlement['settlement_id']}/transition"
        missing_reason = await client.post(url, json={"status": "void"}, headers=HEADERS)
        assert missing_reason.status_code == 422

        voided = await client.post(
            url, json={"status": "void", "reason": "Wrong period"}, headers=HEADERS
        )
        assert voided.status_code == 200
        assert voided.json()["status"] == "void"

    async def test_unknown_deduction(self, client, driver, delivered_loads):
        response = await client.post(
            "/api/v1/settlements/preview",
            json=self.payload(driver, delivered_loads, deductions={"snacks": "5"}),
            headers=HEADERS,
        )
        assert response.status_code == 422
        assert response.json()["errors"] == ["Unknown deduction category: snacks"]


class TestLoadsAndAdjustments:
    async def test_locked_patch_needs_reason(self, client, delivered_loads):
        load_id = delivered_loads[0].load_id
        response = await client.patch(
            f"/api/v1/loads/{load_id}", json={"patch": {"rate": "1200.00"}}, headers=HEADERS
        )
        assert response.status_code == 422

        response = await client.patch(
            f"/api/v1/loads/{load_id}",
            json={"patch": {"rate": "1200.00"}, "reason": "Rate confirmation corrected"},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["logged"] is True

        log = await client.get(f"/api/v1/loads/{load_id}/adjustment-log", headers=HEADERS)
        assert [entry["field"] for entry in log.json()] == ["rate"]

    async def test_unknown_patch_field_is_rejected(self, client, delivered_loads):
        response = await client.patch(
            f"/api/v1/loads/{delivered_loads[0].load_id}",
            json={"patch": {"invoice_number": "X"}, "reason": "typo"},
            headers=HEADERS,
        )
        assert response.status_code == 422

    async def test_invoice_link_survives_patch(self, client, delivered_loads):
        invoice = await create_invoice(client, delivered_loads)
        load_id = delivered_loads[0].load_id

        response = await client.patch(
            f"/api/v1/loads/{load_id}",
            json={"patch": {"invoice_id": None}, "reason": "Rebill"},
            headers=HEADERS,
        )
        assert response.status_code == 422
        assert "can only be released from invoice" in response.text

        load = await client.get(f"/api/v1/loads/{load_id}", headers=HEADERS)
        assert load.json()["invoice_id"] == invoice["invoice_id"]

    async def test_adjustment_approval(self, client, delivered_loads):
        load_id = delivered_loads[0].load_id
        created = await client.post(
            f"/api/v1/loads/{load_id}/adjustments",
            json={"patch": {"rate": "1100.00"}, "reason": "Detention billed as rate"},
            headers=HEADERS,
        )
        assert created.status_code == 201, created.text
        adjustment = created.json()
        assert adjustment["status"] == "pending"

        pending = await client.get(
            "/api/v1/adjustments", params={"status": "pending"}, headers=HEADERS
        )
        assert [a["adjustment_id"] for a in pending.json()] == [adjustment["adjustment_id"]]

        approved = await client.post(
            f"/api/v1/adjustments/{adjustment['adjustment_id']}/approve",
            json={"expected_version": adjustment["version"]},
            headers={**HEADERS, "X-Actor-ID": "manager-1"},
        )
        assert approved.status_code == 200, approved.text
        assert approved.json()["status"] == "applied"
        assert approved.json()["approved_by"] == "manager-1"

        rejected = await client.post(
            f"/api/v1/adjustments/{adjustment['adjustment_id']}/reject",
            json={"reason": "Too late"},
            headers=HEADERS,
        )
        assert rejected.status_code == 409
