"""
Tests for SAT listing normalization and XML merge.
"""

import pytest
from decimal import Decimal

from sat_verifier.ingestion.metadata import (
    DEFAULT_DETAIL_ERROR,
    MetadataNormalizer,
    resolve_authority_status,
    select_detail_uuids,
)
from sat_verifier.models import (
    AuthorityMetadata,
    AuthorityStatus,
    CFDIFields,
    Direction,
    DocumentType,
)


def make_meta(uuid="U1", **overrides):
    data = {
        "uuid": uuid,
        "estado_comprobante": "Vigente",
        "efecto_comprobante": "Ingreso",
        "rfc_emisor": "AAA010101AAA",
        "nombre_emisor": "Proveedor SA",
        "rfc_receptor": "BBB010101BBB",
        "nombre_receptor": "Cliente SA",
        "fecha_emision": "2024-03-01T10:00:00",
        "fecha_certificacion": "2024-03-01T10:05:00",
        "total": "$1,160.00",
    }
    data.update(overrides)
    return AuthorityMetadata(**data)


@pytest.fixture
def normalizer():
    return MetadataNormalizer(Direction.ISSUED)


class TestAuthorityStatus:
    """Tri-state status resolution."""

    @pytest.mark.parametrize("raw", ["Vigente", "VIGENTE", " vigente ", "1", "No cancelado"])
    def test_valid(self, raw):
        assert resolve_authority_status(raw) == (AuthorityStatus.VALID, "Vigente")

    @pytest.mark.parametrize("raw", ["Cancelado", "cancelado", "0", "Cancelación en proceso"])
    def test_cancelled(self, raw):
        assert resolve_authority_status(raw) == (AuthorityStatus.CANCELLED, "Cancelado")

    def test_unknown_keeps_text(self):
        assert resolve_authority_status("En revisión") == (AuthorityStatus.UNKNOWN, "En revisión")

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_is_unknown(self, raw):
        assert resolve_authority_status(raw) == (AuthorityStatus.UNKNOWN, "Desconocido")


class TestMetadataNormalizer:
    """Listing metadata to FiscalDocumentRecord."""

    def test_basic_fields(self, normalizer):
        record = normalizer.normalize(make_meta())

        assert record.uuid == "U1"
        assert record.direction == Direction.ISSUED
        assert record.document_type == DocumentType.INCOME
        assert record.authority_status == AuthorityStatus.VALID
        assert record.emisor.nombre == "Proveedor SA"
        assert record.receptor.rfc == "BBB010101BBB"
        assert record.total == Decimal("1160.00")
        assert record.total_num == Decimal("1160.00")
        assert record.detalle_error is None

    def test_payroll_accented(self, normalizer):
        record = normalizer.normalize(make_meta(efecto_comprobante="Nómina"))
        assert record.document_type == DocumentType.PAYROLL

    def test_unrecognized_type(self, normalizer):
        record = normalizer.normalize(make_meta(efecto_comprobante="Traslado"))
        assert record.document_type is None
        assert record.efecto_comprobante == "Traslado"

    @pytest.mark.parametrize("total", ["-50.00", "abc", "", "NaN"])
    def test_total_never_negative(self, normalizer, total):
        record = normalizer.normalize(make_meta(total=total))
        assert record.total == Decimal("0")
        assert record.total_num == Decimal("0")

    def test_fill_only_present_values(self, normalizer):
        record = normalizer.normalize(make_meta(serie="", folio="99", subtotal="0", descuento="10"))

        assert record.serie == ""
        assert record.folio == "99"
        assert record.subtotal == Decimal("0")
        assert record.descuento == Decimal("10")

    def test_detail_overwrites_listing(self, normalizer):
        detail = CFDIFields(
            serie="X",
            folio="1",
            total_num=Decimal("999.00"),
            traslado_iva_16=Decimal("16.00"),
            total_imp_trasladado=Decimal("16.00"),
        )
        record = normalizer.normalize(make_meta(folio="99"), detail=detail)

        assert record.serie == "X"
        assert record.folio == "1"
        assert record.total_num == Decimal("999.00")
        assert record.traslado_iva_16 == Decimal("16.00")
        # The listing total is not an extracted field
        assert record.total == Decimal("1160.00")

    def test_detail_error_default_message(self, normalizer):
        record = normalizer.normalize(make_meta(), detail_error="")
        assert record.detalle_error == DEFAULT_DETAIL_ERROR

    def test_detail_error_text_kept(self, normalizer):
        record = normalizer.normalize(make_meta(), detail_error="Request error: timeout")
        assert record.detalle_error == "Request error: timeout"
        assert record.to_dict()["detalle_error"] == "Request error: timeout"

    def test_round_trip_differs_only_in_extracted_fields(self, normalizer):
        meta = make_meta(serie="S", folio="F", subtotal="1000")
        detail = CFDIFields(
            serie="S2",
            subtotal=Decimal("1000.00"),
            traslado_iva_8=Decimal("80"),
            total_imp_trasladado=Decimal("80"),
            es_pago=True,
            pagos_num=1,
        )

        enriched = normalizer.normalize(meta, detail=detail).to_dict()
        plain = normalizer.normalize(meta).to_dict()

        changed = {key for key in enriched if enriched[key] != plain[key]}
        assert changed
        assert changed <= set(CFDIFields.field_names())

    def test_duplicates_replace_in_place(self, normalizer):
        listing = [
            make_meta("U1", nombre_receptor="Primero"),
            make_meta("U2"),
            make_meta("U1", nombre_receptor="Segundo"),
        ]
        records = normalizer.normalize_all(listing)

        assert [r.uuid for r in records] == ["U1", "U2"]
        assert records[0].receptor.nombre == "Segundo"

    def test_normalize_all_applies_details_and_errors(self, normalizer):
        listing = [make_meta("U1"), make_meta("U2"), make_meta("U3")]
        records = normalizer.normalize_all(
            listing,
            details={"U1": CFDIFields(serie="Z")},
            detail_errors={"U2": "Response error: no encontrado"},
        )

        assert records[0].serie == "Z"
        assert records[1].detalle_error == "Response error: no encontrado"
        assert records[2].detalle_error is None


class TestSelectDetailUuids:

    def test_first_n_in_order(self):
        listing = [make_meta(f"U{i}") for i in range(5)]
        assert select_detail_uuids(listing, 2) == ["U0", "U1"]

    def test_duplicates_counted_once(self):
        listing = [make_meta("U1"), make_meta("U1"), make_meta("U2")]
        assert select_detail_uuids(listing, 2) == ["U1", "U2"]

    def test_limit_larger_than_listing(self):
        listing = [make_meta("U1")]
        assert select_detail_uuids(listing, 50) == ["U1"]


class TestAuthorityMetadataFromDict:

    def test_sat_field_names(self):
        meta = AuthorityMetadata.from_dict({
            "uuid": "U9",
            "estadoComprobante": "Vigente",
            "efectoComprobante": "Pago",
            "rfcEmisor": "AAA010101AAA",
            "nombreEmisor": "Proveedor SA",
            "fechaCertificacion": "2024-01-02T03:04:05",
            "total": 12.5,
            "usoCfdi": "CP01",
        })

        assert meta.uuid == "U9"
        assert meta.efecto_comprobante == "Pago"
        assert meta.total == "12.5"
        assert meta.uso_cfdi == "CP01"
        assert meta.rfc_receptor == ""
