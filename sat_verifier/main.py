"""
FastAPI application for the SAT Verifier.

Two workflows share one pipeline:
- /api/verificar: compare SAT statuses with the business's ledger
- /api/solicitud-estatus: list SAT documents, optionally with XML detail
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import structlog

from .config import Settings, get_settings
from .ledger import LedgerSnapshotError, LocalLedgerLookup, load_ledger_snapshot
from .models import (
    Direction,
    ErrorKind,
    VerificationError,
    VerificationRequest,
    VerificationResult,
)
from .profiles import BusinessProfile, ProfileNotFoundError, load_profile
from .reconciliation import VerificationOrchestrator

logger = structlog.get_logger()

VERSION = "1.0.0"


def setup_logging(settings: Optional[Settings] = None):
    """Configure logging to file and console."""
    settings = settings or get_settings()

    log_dir = settings.resolved_log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "sat_verifier.log"

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    )

    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_file, encoding="utf-8"),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)

    # Configure standard logging
    logging.basicConfig(
        level=getattr(logging, settings.app_log_level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    # Configure structlog to use standard logging
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    setup_logging(settings)
    settings.resolved_credential_storage_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Starting SAT Verifier API", env=settings.app_env, gateway=settings.sat_gateway_url)
    yield
    logger.info("Shutting down SAT Verifier API")


app = FastAPI(
    title="Verificador SAT",
    description="Conciliación de estatus de CFDI entre el SAT y la contabilidad",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request models
class VerifyRequest(BaseModel):
    empresa: str = Field(min_length=1)
    fecha_inicio: date
    fecha_final: date
    tipo: Direction

    def to_request(self, settings: Settings) -> VerificationRequest:
        return VerificationRequest(
            start_date=self.fecha_inicio,
            end_date=self.fecha_final,
            direction=self.tipo,
        )


class StatusQueryRequest(VerifyRequest):
    detallado: bool = False
    max_detalles: Optional[int] = Field(default=None, ge=1)
    concurrencia: Optional[int] = Field(default=None, ge=1)

    def to_request(self, settings: Settings) -> VerificationRequest:
        return VerificationRequest(
            start_date=self.fecha_inicio,
            end_date=self.fecha_final,
            direction=self.tipo,
            detailed=self.detallado,
            max_details=self.max_detalles or settings.default_max_details,
            concurrency=self.concurrencia or settings.default_download_concurrency,
        )


# Dependencies
def get_orchestrator() -> VerificationOrchestrator:
    return VerificationOrchestrator(settings=get_settings())


def get_profile_loader() -> Callable[[str], BusinessProfile]:
    settings = get_settings()
    return lambda empresa: load_profile(empresa, settings)


def get_ledger_loader() -> Callable[[str], LocalLedgerLookup]:
    settings = get_settings()
    return lambda empresa: load_ledger_snapshot(empresa, settings.resolved_ledger_dir)


def status_code_for(result: VerificationResult) -> int:
    """Validation failures travel with 200, like successful responses."""
    if result.success:
        return 200
    if result.kind in (ErrorKind.UPSTREAM_CONNECTION, ErrorKind.UPSTREAM_BUSINESS):
        return 502
    if result.kind == ErrorKind.INTERNAL:
        return 500
    return 200


def respond(result: VerificationResult) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(result), content=result.to_response())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg', '')}"
        for err in exc.errors()
    ]
    logger.warning("Invalid request parameters", path=request.url.path, errors=errors)
    return respond(VerificationError(
        kind=ErrorKind.INVALID_REQUEST,
        message="Parámetros inválidos",
        errors=errors,
    ))


def unknown_business(empresa: str, error: ProfileNotFoundError) -> VerificationError:
    logger.warning("Unknown business", empresa=empresa, error=str(error))
    return VerificationError(
        kind=ErrorKind.INVALID_REQUEST,
        message="Empresa no encontrada",
        errors=[str(error)],
    )


# Routes
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION, "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/verificar")
async def verify(
    body: VerifyRequest,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
    profile_loader: Callable[[str], BusinessProfile] = Depends(get_profile_loader),
    ledger_loader: Callable[[str], LocalLedgerLookup] = Depends(get_ledger_loader),
):
    """Compare the SAT statuses of a period with the business's ledger."""
    try:
        profile = profile_loader(body.empresa)
    except ProfileNotFoundError as e:
        return respond(unknown_business(body.empresa, e))

    try:
        ledger = ledger_loader(body.empresa)
    except LedgerSnapshotError as e:
        logger.error("Ledger unavailable", empresa=body.empresa, error=str(e))
        return respond(VerificationError(
            kind=ErrorKind.INTERNAL,
            message="Error interno del sistema",
            errors=[str(e)],
        ))

    result = await orchestrator.reconcile(profile, body.to_request(orchestrator.settings), ledger)
    return respond(result)


@app.post("/api/solicitud-estatus")
async def status_query(
    body: StatusQueryRequest,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
    profile_loader: Callable[[str], BusinessProfile] = Depends(get_profile_loader),
):
    """List the SAT documents of a period, optionally with XML detail."""
    try:
        profile = profile_loader(body.empresa)
    except ProfileNotFoundError as e:
        return respond(unknown_business(body.empresa, e))
    result = await orchestrator.query_documents(profile, body.to_request(orchestrator.settings))
    return respond(result)
