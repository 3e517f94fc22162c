"""
CFDI (Electronic Invoice) XML parser.
Extracts commercial and tax fields from Mexican electronic invoices.
"""

from decimal import Decimal
from typing import List, Optional, Union
import xml.etree.ElementTree as ET

import structlog

from ..models import CFDIFields
from ..utils.formatting import parse_decimal

logger = structlog.get_logger()


# XML Namespaces for CFDI 4.0 / 3.3 and Pagos 2.0 / 1.0
CFDI_NAMESPACES = {
    "cfdi": "http://www.sat.gob.mx/cfd/4",
    "cfdi33": "http://www.sat.gob.mx/cfd/3",
    "pago20": "http://www.sat.gob.mx/Pagos20",
    "pago10": "http://www.sat.gob.mx/Pagos",
}

IVA_RATE_16 = Decimal("0.16")
IVA_RATE_8 = Decimal("0.08")
RATE_TOLERANCE = Decimal("1e-6")


class CFDIParser:
    """
    Parser for CFDI XML files.
    Supports CFDI 3.3 and 4.0 formats with Pagos 1.0 and 2.0 complements.

    `extract_fields` never raises: a body that cannot be read yields the
    default CFDIFields.
    """

    def extract_fields(self, xml_content: Union[str, bytes, None]) -> CFDIFields:
        """
        Parse a CFDI XML body into a flat field set.

        Args:
            xml_content: XML content as string or bytes

        Returns:
            CFDIFields (all defaults when the body is not a readable CFDI)
        """
        fields = CFDIFields()
        if not xml_content:
            return fields

        try:
            root = ET.fromstring(xml_content.strip())
        except (ET.ParseError, ValueError, TypeError) as e:
            logger.warning("Failed to parse CFDI XML", error=str(e))
            return fields

        try:
            self._extract(root, fields)
        except Exception as e:
            logger.error("Failed to extract CFDI fields", error=str(e))
            return CFDIFields()

        return fields

    def detect_version(self, root: ET.Element) -> Optional[str]:
        """Return the namespace prefix of the Comprobante root, newest first."""
        for prefix in ("cfdi", "cfdi33"):
            if root.tag == f"{{{CFDI_NAMESPACES[prefix]}}}Comprobante":
                return prefix
        return None

    def _extract(self, root: ET.Element, fields: CFDIFields) -> None:
        ns = CFDI_NAMESPACES
        ns_prefix = self.detect_version(root)
        is_comprobante = ns_prefix is not None
        ns_prefix = ns_prefix or "cfdi"

        if is_comprobante:
            def attr(*names: str) -> str:
                for name in names:
                    value = root.get(name)
                    if value:
                        return value
                return ""

            fields.serie = attr("Serie", "serie")
            fields.folio = attr("Folio", "folio")
            fields.metodo_pago = attr("MetodoPago", "metodoDePago")
            fields.forma_pago = attr("FormaPago", "formaDePago")
            fields.moneda = attr("Moneda")
            fields.subtotal = parse_decimal(attr("SubTotal"))
            fields.descuento = parse_decimal(attr("Descuento"))
            fields.total_num = parse_decimal(attr("Total"))
            fields.es_pago = attr("TipoDeComprobante").upper() == "P"

            receptor = root.find(f"{ns_prefix}:Receptor", ns)
            if receptor is not None:
                fields.uso_cfdi = receptor.get("UsoCFDI") or receptor.get("usoCFDI") or ""

        # Some producers label payment CFDIs with the wrong type code, so the
        # presence of Pagos nodes wins.
        fields.pagos_num = self._count_payments(root)
        if fields.pagos_num > 0:
            fields.es_pago = True

        traslados = self._transfer_nodes(root, ns_prefix, is_comprobante)
        for traslado in traslados:
            tasa = parse_decimal(traslado.get("TasaOCuota"))
            importe = parse_decimal(traslado.get("Importe"))

            if abs(tasa - IVA_RATE_16) < RATE_TOLERANCE:
                fields.traslado_iva_16 += importe
            elif abs(tasa - IVA_RATE_8) < RATE_TOLERANCE:
                fields.traslado_iva_8 += importe

        fields.total_imp_trasladado = fields.traslado_iva_16 + fields.traslado_iva_8

    def _count_payments(self, root: ET.Element) -> int:
        """Count Pago nodes under either Pagos complement revision."""
        ns = CFDI_NAMESPACES
        count = 0
        for prefix in ("pago10", "pago20"):
            count += len(root.findall(f".//{prefix}:Pagos/{prefix}:Pago", ns))
        return count

    def _transfer_nodes(
        self,
        root: ET.Element,
        ns_prefix: str,
        is_comprobante: bool,
    ) -> List[ET.Element]:
        """
        Tax transfer nodes to sum.
        Document-level nodes win; line items are used only when there are none.
        """
        ns = CFDI_NAMESPACES
        p = ns_prefix

        top: List[ET.Element] = []
        if is_comprobante:
            top = root.findall(f"{p}:Impuestos/{p}:Traslados/{p}:Traslado", ns)
        if top:
            return top

        return root.findall(
            f".//{p}:Concepto/{p}:Impuestos/{p}:Traslados/{p}:Traslado", ns
        )


_default_parser = CFDIParser()


def extract_cfdi_fields(xml_content: Union[str, bytes, None]) -> CFDIFields:
    """Module-level shortcut for CFDIParser().extract_fields."""
    return _default_parser.extract_fields(xml_content)
