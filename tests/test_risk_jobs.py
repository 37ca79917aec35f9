"""
Tests for the background risk calculation job dispatch.
"""
from contextlib import asynccontextmanager

import pytest
from conftest import TENANT, FakeLedger

from app.services.risk_jobs import _parse_args, process_risk_calculation_job


class _RecordingEngine:

    def __init__(self, ledger, calls, failing=()):
        self.ledger = ledger
        self.calls = calls
        self.failing = set(failing)

    async def evaluate_document(self, tenant_id, document_id):
        self.calls.append(("document", tenant_id, document_id))

    async def evaluate_client_company(self, tenant_id, client_company_id):
        if client_company_id in self.failing:
            raise RuntimeError("database went away")
        self.calls.append(("company", tenant_id, client_company_id))


class _Harness:

    def __init__(self, failing=()):
        self.ledger = FakeLedger()
        self.calls = []
        self.sessions = 0
        self.failing = failing

    @asynccontextmanager
    async def session_factory(self):
        self.sessions += 1
        yield object()

    def engine_factory(self, session):
        return _RecordingEngine(self.ledger, self.calls, self.failing)


class TestRiskCalculationJob:

    async def test_document_payload(self):
        h = _Harness()
        result = await process_risk_calculation_job(
            {"tenant_id": TENANT, "document_id": "doc-1", "client_company_id": "co-1"},
            h.session_factory, h.engine_factory,
        )
        assert h.calls == [("document", TENANT, "doc-1")]
        assert result["status"] == "success"

    async def test_company_payload(self):
        h = _Harness()
        await process_risk_calculation_job(
            {"tenant_id": TENANT, "client_company_id": "co-1"}, h.session_factory, h.engine_factory,
        )
        assert h.calls == [("company", TENANT, "co-1")]

    async def test_tenant_wide_payload_isolates_failures(self):
        h = _Harness(failing={"co-2"})
        for company in ("co-1", "co-2", "co-3"):
            h.ledger.add_company(company)
        h.ledger.add_company("co-4", is_active=False)
        h.ledger.add_company("co-5", tenant_id="tenant-b")

        result = await process_risk_calculation_job({"tenant_id": TENANT}, h.session_factory, h.engine_factory)

        assert h.calls == [("company", TENANT, "co-1"), ("company", TENANT, "co-3")]
        assert result["evaluated"] == ["co-1", "co-3"]
        assert result["failed"] == ["co-2"]
        assert result["status"] == "partial"
        assert h.sessions == 4  # listing + one per company

    async def test_single_entity_failure_propagates(self):
        h = _Harness(failing={"co-1"})
        with pytest.raises(RuntimeError):
            await process_risk_calculation_job(
                {"tenant_id": TENANT, "client_company_id": "co-1"}, h.session_factory, h.engine_factory,
            )

    def test_cli_arguments(self):
        job = _parse_args(["--tenant", TENANT, "--company", "co-1"])
        assert job.tenant_id == TENANT
        assert job.client_company_id == "co-1"
        assert job.document_id is None
