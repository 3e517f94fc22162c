"""
Verification Orchestrator - Main pipeline coordinator.

Runs one verification request end to end:
1. Validation (business configuration, FIEL files, password, date range)
2. SAT listing through the gateway
3. Bounded XML download (detail workflow only)
4. Normalization and merge
5. Status reconciliation against the ledger (reconciliation workflow only)
6. Report aggregation

Every outcome is returned as a VerificationOk or VerificationError; nothing
escapes as an exception.
"""

import asyncio
from typing import Any, Callable, Dict, Optional
import time

import structlog

from ..config import Settings, get_settings
from ..ingestion import CFDIParser, MetadataNormalizer, select_detail_uuids
from ..integrations import (
    AuthorityBusinessError,
    AuthorityConnectionError,
    CredentialError,
    CredentialFiles,
    FielCredential,
    SatGatewayClient,
    decrypt_password,
    ensure_credential_files,
    open_credential,
    temporary_credential_files,
)
from ..ledger import LocalLedgerLookup
from ..models import (
    Direction,
    DocumentType,
    ErrorKind,
    VerificationError,
    VerificationOk,
    VerificationRequest,
    VerificationResult,
)
from ..profiles import BusinessProfile
from .aggregator import ReportAggregator
from .status_reconciler import DocumentStatusReconciler

logger = structlog.get_logger()


EMPTY_RESULT_MESSAGE = "No se encontraron comprobantes"
LISTING_MESSAGE = "Consulta exitosa - {count} comprobantes encontrados"


ClientFactory = Callable[[CredentialFiles, Settings], Any]
CredentialOpener = Callable[..., FielCredential]


class VerificationOrchestrator:
    """
    Main orchestrator for SAT verification.

    Collaborators are injectable so tests can replace the gateway client
    and the FIEL opener.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        credential_opener: CredentialOpener = open_credential,
    ):
        self.settings = settings or get_settings()
        self.client_factory = client_factory or SatGatewayClient
        self.credential_opener = credential_opener
        self.cfdi_parser = CFDIParser()

    async def reconcile(
        self,
        profile: BusinessProfile,
        request: VerificationRequest,
        ledger: LocalLedgerLookup,
    ) -> VerificationResult:
        """
        Compare the SAT listing for a period with the business's ledger.

        Args:
            profile: Business whose FIEL is used
            request: Period and direction
            ledger: Bookkeeping lookups for the business

        Returns:
            VerificationOk with discrepancies, or VerificationError
        """
        return await self._run(
            profile,
            request,
            reconciler=DocumentStatusReconciler(ledger),
            detailed=None,
        )

    async def query_documents(
        self,
        profile: BusinessProfile,
        request: VerificationRequest,
    ) -> VerificationResult:
        """
        List the SAT documents for a period, optionally enriched with XML fields.
        No ledger comparison is made; items come newest certification first.
        """
        return await self._run(
            profile,
            request,
            reconciler=None,
            detailed=request.detailed,
        )

    async def _run(
        self,
        profile: BusinessProfile,
        request: VerificationRequest,
        reconciler: Optional[DocumentStatusReconciler],
        detailed: Optional[bool],
    ) -> VerificationResult:
        start_time = time.time()
        log = logger.bind(
            empresa=profile.empresa,
            direction=request.direction.value,
            fecha_inicio=request.start_date.isoformat(),
            fecha_final=request.end_date.isoformat(),
        )

        try:
            credential = self._validate(profile, request)
        except CredentialError as e:
            log.warning("Verification rejected", kind=e.kind.value, reason=str(e))
            return VerificationError(kind=e.kind, message=str(e), errors=[e.detail])
        except Exception as e:
            log.exception("Credential loading failed")
            return VerificationError(
                kind=ErrorKind.INTERNAL,
                message="Error interno del sistema",
                errors=[str(e)],
            )

        storage_dir = self.settings.resolved_credential_storage_dir

        try:
            with temporary_credential_files(credential, storage_dir) as files:
                result = await asyncio.wait_for(
                    self._execute(files, request, reconciler, detailed),
                    timeout=self.settings.sat_request_budget_seconds,
                )

        except asyncio.TimeoutError:
            log.error("SAT request budget exceeded", budget=self.settings.sat_request_budget_seconds)
            return VerificationError(
                kind=ErrorKind.UPSTREAM_CONNECTION,
                message="Error de conexión con el SAT",
                errors=["Se agotó el tiempo de espera de la consulta al SAT."],
            )

        except AuthorityConnectionError as e:
            log.error("SAT connection failed", error=str(e))
            return VerificationError(
                kind=ErrorKind.UPSTREAM_CONNECTION,
                message="Error de conexión con el SAT",
                errors=[str(e)],
            )

        except AuthorityBusinessError as e:
            log.error("SAT rejected the request", error=str(e))
            return VerificationError(
                kind=ErrorKind.UPSTREAM_BUSINESS,
                message=str(e),
                errors=e.errors,
            )

        except Exception as e:
            log.exception("Verification failed")
            return VerificationError(
                kind=ErrorKind.INTERNAL,
                message="Error interno del sistema",
                errors=[str(e)],
            )

        log.info(
            "Verification completed",
            success=result.success,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return result

    def _validate(self, profile: BusinessProfile, request: VerificationRequest) -> FielCredential:
        """
        Checks in order: configuration, files, password, date range, FIEL.
        No network call happens before all of them pass.
        """
        verifier = profile.verificador_sat
        if not profile.has_verifier:
            raise CredentialError(
                ErrorKind.CONFIG_MISSING,
                "Configuración requerida",
                "La empresa no ha configurado el verificador del SAT.",
            )

        ensure_credential_files(verifier.cer_path, verifier.key_path)

        password = (
            decrypt_password(verifier.encrypted_password, self.settings.fiel_encryption_key)
            if verifier.encrypted_password else ""
        )
        if not password:
            raise CredentialError(
                ErrorKind.CREDENTIAL_INVALID,
                "Contraseña inválida",
                "La contraseña de la FIEL está vacía o es inválida.",
            )

        if not request.has_valid_range:
            raise CredentialError(
                ErrorKind.INVALID_DATE_RANGE,
                "Rango de fechas inválido",
                "La fecha inicial no puede ser mayor a la fecha final.",
            )

        return self.credential_opener(verifier.cer_path, verifier.key_path, password)

    async def _execute(
        self,
        files: CredentialFiles,
        request: VerificationRequest,
        reconciler: Optional[DocumentStatusReconciler],
        detailed: Optional[bool],
    ) -> VerificationResult:
        aggregator = ReportAggregator(
            direction=request.direction,
            start_date=request.start_date,
            end_date=request.end_date,
            detailed=detailed,
        )

        async with self.client_factory(files, self.settings) as client:
            metadata = await client.query_by_period(
                request.start_date, request.end_date, request.direction
            )

            if not metadata:
                logger.info("No SAT documents in period", direction=request.direction.value)
                return VerificationOk(
                    report=aggregator.build(),
                    message=EMPTY_RESULT_MESSAGE,
                    empty=True,
                )

            details: Dict[str, Any] = {}
            detail_errors: Dict[str, str] = {}
            if detailed:
                uuids = select_detail_uuids(metadata, request.max_details)
                bodies = await client.fetch_document_bodies(
                    uuids,
                    request.direction,
                    self.settings.effective_concurrency(request.concurrency),
                )
                for uuid in uuids:
                    body = bodies.get(uuid)
                    if body is not None and body.ok:
                        details[uuid] = self.cfdi_parser.extract_fields(body.body)
                    else:
                        detail_errors[uuid] = body.error if body is not None else ""
                aggregator.record_detail_downloads(len(details))

        normalizer = MetadataNormalizer(request.direction)
        records = normalizer.normalize_all(metadata, details, detail_errors)

        for record in records:
            if reconciler is None:
                aggregator.add(record)
                continue
            if record.direction == Direction.ISSUED and record.document_type == DocumentType.PAYROLL:
                continue
            aggregator.add(record, reconciler.reconcile(record))

        if reconciler is None:
            report = aggregator.build(sort_by_certification=True)
            return VerificationOk(
                report=report,
                message=LISTING_MESSAGE.format(count=len(report.records)),
            )
        return VerificationOk(report=aggregator.build())

