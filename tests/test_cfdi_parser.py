"""
Tests for the CFDI XML field extractor.
"""

import pytest
from decimal import Decimal

from sat_verifier.ingestion.cfdi_parser import CFDIParser, extract_cfdi_fields
from sat_verifier.models import CFDIFields


CFDI40_TWO_LINES_16 = """<?xml version="1.0" encoding="UTF-8"?>
<cfdi:Comprobante xmlns:cfdi="http://www.sat.gob.mx/cfd/4"
    Version="4.0" Serie="A" Folio="1001" Moneda="MXN" SubTotal="1500.00"
    Descuento="0" Total="1740.00" TipoDeComprobante="I"
    MetodoPago="PUE" FormaPago="03">
  <cfdi:Emisor Rfc="AAA010101AAA" Nombre="Proveedor SA"/>
  <cfdi:Receptor Rfc="BBB010101BBB" Nombre="Cliente SA" UsoCFDI="G03"/>
  <cfdi:Conceptos>
    <cfdi:Concepto Importe="1000.00">
      <cfdi:Impuestos>
        <cfdi:Traslados>
          <cfdi:Traslado Base="1000.00" Impuesto="002" TasaOCuota="0.160000" Importe="160.00"/>
        </cfdi:Traslados>
      </cfdi:Impuestos>
    </cfdi:Concepto>
    <cfdi:Concepto Importe="500.00">
      <cfdi:Impuestos>
        <cfdi:Traslados>
          <cfdi:Traslado Base="500.00" Impuesto="002" TasaOCuota="0.160000" Importe="80.00"/>
        </cfdi:Traslados>
      </cfdi:Impuestos>
    </cfdi:Concepto>
  </cfdi:Conceptos>
</cfdi:Comprobante>
"""

CFDI33_DOCUMENT_LEVEL = """<?xml version="1.0" encoding="UTF-8"?>
<cfdi:Comprobante xmlns:cfdi="http://www.sat.gob.mx/cfd/3"
    Version="3.3" serie="B" folio="77" Moneda="MXN" SubTotal="200.00" Total="216.00"
    TipoDeComprobante="I" metodoDePago="PPD" formaDePago="99">
  <cfdi:Receptor Rfc="BBB010101BBB" usoCFDI="P01"/>
  <cfdi:Conceptos>
    <cfdi:Concepto Importe="200.00">
      <cfdi:Impuestos>
        <cfdi:Traslados>
          <cfdi:Traslado Impuesto="002" TasaOCuota="0.080000" Importe="16.00"/>
        </cfdi:Traslados>
      </cfdi:Impuestos>
    </cfdi:Concepto>
  </cfdi:Conceptos>
  <cfdi:Impuestos TotalImpuestosTrasladados="16.00">
    <cfdi:Traslados>
      <cfdi:Traslado Impuesto="002" TasaOCuota="0.080000" Importe="16.00"/>
    </cfdi:Traslados>
  </cfdi:Impuestos>
</cfdi:Comprobante>
"""

CFDI40_PAGOS20 = """<?xml version="1.0" encoding="UTF-8"?>
<cfdi:Comprobante xmlns:cfdi="http://www.sat.gob.mx/cfd/4"
    xmlns:pago20="http://www.sat.gob.mx/Pagos20"
    Version="4.0" Moneda="XXX" SubTotal="0" Total="0" TipoDeComprobante="I">
  <cfdi:Receptor Rfc="BBB010101BBB" UsoCFDI="CP01"/>
  <cfdi:Complemento>
    <pago20:Pagos Version="2.0">
      <pago20:Pago MontoP="100.00"/>
      <pago20:Pago MontoP="250.00"/>
    </pago20:Pagos>
  </cfdi:Complemento>
</cfdi:Comprobante>
"""

CFDI33_PAGOS10 = """<cfdi:Comprobante xmlns:cfdi="http://www.sat.gob.mx/cfd/3"
    xmlns:pago10="http://www.sat.gob.mx/Pagos" Version="3.3" TipoDeComprobante="P">
  <cfdi:Complemento>
    <pago10:Pagos Version="1.0">
      <pago10:Pago Monto="50.00"/>
    </pago10:Pagos>
  </cfdi:Complemento>
</cfdi:Comprobante>
"""


@pytest.fixture
def parser():
    return CFDIParser()


class TestCFDIParser:
    """Field extraction from CFDI bodies."""

    def test_line_item_vat_is_summed(self, parser):
        """Two line-item transfers at 16% and no document-level node."""
        fields = parser.extract_fields(CFDI40_TWO_LINES_16)

        assert fields.traslado_iva_16 == Decimal("240.00")
        assert fields.traslado_iva_8 == Decimal("0")
        assert fields.total_imp_trasladado == fields.traslado_iva_16

    def test_root_attributes_cfdi40(self, parser):
        fields = parser.extract_fields(CFDI40_TWO_LINES_16)

        assert fields.serie == "A"
        assert fields.folio == "1001"
        assert fields.moneda == "MXN"
        assert fields.metodo_pago == "PUE"
        assert fields.forma_pago == "03"
        assert fields.uso_cfdi == "G03"
        assert fields.subtotal == Decimal("1500.00")
        assert fields.total_num == Decimal("1740.00")
        assert fields.es_pago is False
        assert fields.pagos_num == 0

    def test_lowercase_attributes_cfdi33(self, parser):
        fields = parser.extract_fields(CFDI33_DOCUMENT_LEVEL)

        assert fields.serie == "B"
        assert fields.folio == "77"
        assert fields.metodo_pago == "PPD"
        assert fields.forma_pago == "99"
        assert fields.uso_cfdi == "P01"

    def test_document_level_transfers_win(self, parser):
        """The same tax repeated per line must not be counted twice."""
        fields = parser.extract_fields(CFDI33_DOCUMENT_LEVEL)

        assert fields.traslado_iva_8 == Decimal("16.00")
        assert fields.traslado_iva_16 == Decimal("0")
        assert fields.total_imp_trasladado == Decimal("16.00")

    def test_pagos_nodes_force_payment_flag(self, parser):
        """Pagos 2.0 nodes mark a payment even when the type code says income."""
        fields = parser.extract_fields(CFDI40_PAGOS20)

        assert fields.es_pago is True
        assert fields.pagos_num == 2
        assert fields.uso_cfdi == "CP01"

    def test_pagos10_counted(self, parser):
        fields = parser.extract_fields(CFDI33_PAGOS10)

        assert fields.es_pago is True
        assert fields.pagos_num == 1

    def test_bytes_input(self, parser):
        fields = parser.extract_fields(CFDI40_TWO_LINES_16.encode("utf-8"))

        assert fields.serie == "A"
        assert fields.traslado_iva_16 == Decimal("240.00")

    @pytest.mark.parametrize("garbage", [
        "",
        None,
        "this is not xml",
        "<html><body>Error 500</body></html>",
        "<cfdi:Comprobante",
    ])
    def test_garbage_returns_defaults(self, parser, garbage):
        """Unreadable input never raises."""
        assert parser.extract_fields(garbage) == CFDIFields()

    def test_unknown_rate_ignored(self, parser):
        xml = CFDI40_TWO_LINES_16.replace('TasaOCuota="0.160000" Importe="80.00"',
                                          'TasaOCuota="0.000000" Importe="0.00"')
        fields = parser.extract_fields(xml)

        assert fields.traslado_iva_16 == Decimal("160.00")
        assert fields.total_imp_trasladado == Decimal("160.00")

    def test_module_shortcut(self):
        assert extract_cfdi_fields(CFDI33_PAGOS10).pagos_num == 1
