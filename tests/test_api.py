"""
Tests for the HTTP API.
"""

import json

import pytest
from fastapi.testclient import TestClient

from sat_verifier.integrations.sat_gateway import AuthorityConnectionError
from sat_verifier.ledger import InMemoryLedgerLookup, LedgerSnapshotError, load_ledger_snapshot
from sat_verifier.main import (
    app,
    get_ledger_loader,
    get_orchestrator,
    get_profile_loader,
)
from sat_verifier.profiles import ProfileNotFoundError, load_profile
from sat_verifier.reconciliation.orchestrator import VerificationOrchestrator

from .test_orchestrator import FakeClient, listing


BODY = {
    "empresa": "acme",
    "fecha_inicio": "2024-03-01",
    "fecha_final": "2024-03-31",
    "tipo": "emitidos",
}


@pytest.fixture
def fake_client():
    return FakeClient(metadata=listing(2))


@pytest.fixture
def api(settings, profile, fake_client):
    """TestClient wired to a fake gateway and an in-memory ledger."""
    def profile_loader(empresa):
        if empresa != "acme":
            raise ProfileNotFoundError(f"No existe la empresa: {empresa}")
        return profile

    app.dependency_overrides[get_orchestrator] = lambda: VerificationOrchestrator(
        settings, client_factory=fake_client
    )
    app.dependency_overrides[get_profile_loader] = lambda: profile_loader
    app.dependency_overrides[get_ledger_loader] = lambda: (lambda empresa: InMemoryLedgerLookup())
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestEndpoints:

    def test_health(self):
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_verify(self, api):
        response = api.post("/api/verificar", json=BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["exito"] is True
        assert data["totales_diferencias"] == 2
        assert data["resumen"]["rango_fechas"] == "01/03/2024 - 31/03/2024"
        assert data["diferencias"][0]["total"] == "$ 116.00"

    def test_status_query_detailed(self, api, fake_client):
        response = api.post("/api/solicitud-estatus", json=dict(
            BODY, detallado=True, max_detalles=1, concurrencia=2,
        ))

        data = response.json()
        assert response.status_code == 200
        assert data["detallado"] is True
        assert data["descargas_xml"] == 1
        assert fake_client.fetched == ["U0"]
        assert [item["uuid"] for item in data["items"]] == ["U1", "U0"]

    def test_invalid_direction(self, api):
        response = api.post("/api/verificar", json=dict(BODY, tipo="otros"))

        assert response.status_code == 200
        data = response.json()
        assert data["exito"] is False
        assert data["tipo"] == "parametros"

    def test_invalid_limits(self, api):
        response = api.post("/api/solicitud-estatus", json=dict(BODY, max_detalles=0))

        assert response.json()["tipo"] == "parametros"

    def test_unknown_business(self, api):
        response = api.post("/api/verificar", json=dict(BODY, empresa="otra"))

        data = response.json()
        assert response.status_code == 200
        assert data["exito"] is False
        assert data["mensaje"] == "Empresa no encontrada"

    def test_date_range_is_validation_failure(self, api):
        response = api.post("/api/verificar", json=dict(BODY, fecha_inicio="2024-04-01"))

        assert response.status_code == 200
        assert response.json()["tipo"] == "rango_fechas"

    def test_upstream_failure_status(self, api, fake_client):
        fake_client.error = AuthorityConnectionError("Request error: refused")

        response = api.post("/api/verificar", json=BODY)

        assert response.status_code == 502
        assert response.json()["tipo"] == "conexion"

    def test_internal_failure_status(self, api, fake_client):
        fake_client.error = RuntimeError("boom")

        response = api.post("/api/solicitud-estatus", json=BODY)

        assert response.status_code == 500
        assert response.json()["tipo"] == "interno"

    def test_unreadable_ledger(self, api):
        def broken(empresa):
            raise LedgerSnapshotError("No se pudo leer la contabilidad")

        app.dependency_overrides[get_ledger_loader] = lambda: broken

        response = api.post("/api/verificar", json=BODY)

        assert response.status_code == 500
        assert response.json()["tipo"] == "interno"


class TestProfilesAndSnapshots:
    """File-backed profile and ledger loading."""

    def test_load_profile_resolves_relative_paths(self, settings):
        folder = settings.resolved_profiles_dir
        folder.mkdir(parents=True)
        (folder / "acme.json").write_text(json.dumps({
            "nombre": "ACME",
            "verificador_sat": {
                "fiel": "fiel/acme.cer",
                "llave_fiel": "fiel/acme.key",
                "clave_fiel": "token",
            },
        }), encoding="utf-8")

        profile = load_profile("acme", settings)

        assert profile.empresa == "acme"
        assert profile.has_verifier
        assert profile.verificador_sat.cer_path == settings.data_dir / "fiel" / "acme.cer"
        assert profile.verificador_sat.encrypted_password == "token"

    def test_profile_without_verifier(self, settings):
        folder = settings.resolved_profiles_dir
        folder.mkdir(parents=True)
        (folder / "acme.json").write_text('{"nombre": "ACME"}', encoding="utf-8")

        assert not load_profile("acme", settings).has_verifier

    @pytest.mark.parametrize("empresa", ["nope", "../etc/passwd", ""])
    def test_unknown_profile(self, settings, empresa):
        with pytest.raises(ProfileNotFoundError):
            load_profile(empresa, settings)

    def test_ledger_snapshot(self, settings):
        folder = settings.resolved_ledger_dir
        folder.mkdir(parents=True)
        (folder / "acme.json").write_text(json.dumps({
            "facturas": [{"id": 1, "uuid": "U1", "status": 0, "url": "/facturas/1"}],
            "facturas_pagos": [{"id": 7, "cfdi": "P1", "status": 1}],
            "pagos_complemento": [{"id": 3, "uuid": "R1", "pago": None}],
            "compras_notas_credito": [{"id": 4, "uuid": "N1", "compra": {"id": 5, "status": 0}}],
        }), encoding="utf-8")

        ledger = load_ledger_snapshot("acme", folder)

        invoice = ledger.find_invoice("U1")
        assert invoice.is_cancelled and invoice.url == "/facturas/1"
        assert ledger.find_payment_complement("P1").id == "7"
        assert ledger.find_supplier_payment_complement("R1").payment_cancelled
        assert ledger.find_supplier_credit_note("N1").purchase.is_cancelled

    def test_missing_snapshot_is_empty(self, settings):
        ledger = load_ledger_snapshot("acme", settings.resolved_ledger_dir)

        assert ledger.find_invoice("U1") is None

    def test_corrupt_snapshot(self, settings):
        folder = settings.resolved_ledger_dir
        folder.mkdir(parents=True)
        (folder / "acme.json").write_text("{no json", encoding="utf-8")

        with pytest.raises(LedgerSnapshotError):
            load_ledger_snapshot("acme", folder)
