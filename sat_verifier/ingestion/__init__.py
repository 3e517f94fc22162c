"""Ingestion module for SAT listings and CFDI XML bodies."""

from .cfdi_parser import CFDIParser, extract_cfdi_fields
from .metadata import (
    MetadataNormalizer,
    merge_detail,
    resolve_authority_status,
    select_detail_uuids,
)

__all__ = [
    "CFDIParser",
    "extract_cfdi_fields",
    "MetadataNormalizer",
    "merge_detail",
    "resolve_authority_status",
    "select_detail_uuids",
]
