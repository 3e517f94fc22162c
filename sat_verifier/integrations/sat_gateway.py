"""
SAT gateway client: lists CFDI metadata by period and downloads XML bodies.

The gateway is the microservice that holds the SAT session opened with the
business's FIEL. This client only speaks its JSON API.
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Settings, get_settings
from ..models import AuthorityMetadata, Direction
from .credentials import CredentialFiles

logger = structlog.get_logger()


class AuthorityError(Exception):
    """Base exception for SAT gateway failures."""
    def __init__(self, message: str, status_code: int = 0, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

    @property
    def errors(self) -> List[str]:
        if isinstance(self.details, list):
            return [str(d) for d in self.details]
        if self.details:
            return [str(self.details)]
        return [str(self)]


class AuthorityConnectionError(AuthorityError):
    """The gateway or the SAT could not be reached."""


class AuthorityBusinessError(AuthorityError):
    """The SAT (or the gateway on its behalf) rejected the request."""


@dataclass
class DocumentBody:
    """Outcome of downloading one XML body."""
    uuid: str
    body: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.body is not None


class FiscalAuthorityClient(Protocol):
    """What the orchestrator needs from the SAT side."""

    async def query_by_period(
        self,
        start_date: date,
        end_date: date,
        direction: Direction,
    ) -> List[AuthorityMetadata]: ...

    async def fetch_document_bodies(
        self,
        uuids: Iterable[str],
        direction: Direction,
        concurrency_limit: int,
    ) -> Dict[str, DocumentBody]: ...


def decode_gateway_json(raw: str) -> Dict[str, Any]:
    """Decode a gateway response, skipping any noise before the first '{'."""
    start = raw.find("{")
    clean = raw[start:] if start != -1 else raw
    try:
        data = json.loads(clean)
    except json.JSONDecodeError as e:
        raise AuthorityBusinessError("Respuesta inválida del servicio SAT", details=raw[:500]) from e
    if not isinstance(data, dict):
        raise AuthorityBusinessError("Respuesta inválida del servicio SAT", details=raw[:500])
    return data


class SatGatewayClient:
    """
    Client for the SAT gateway.
    Authenticates once with the FIEL and reuses the session token.
    """

    def __init__(
        self,
        credential_files: CredentialFiles,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.sat_gateway_url
        self.credential_files = credential_files
        self._transport = transport
        self._token: Optional[str] = None
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "SatGatewayClient":
        await self.authenticate()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(
                    self.settings.sat_timeout_seconds,
                    connect=self.settings.sat_connect_timeout_seconds,
                ),
                verify=self.settings.sat_ca_bundle or True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    async def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """Request with retries on connection failures only."""
        retrying = retry(
            stop=stop_after_attempt(max(1, self.settings.sat_retry_attempts)),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(AuthorityConnectionError),
            reraise=True,
        )
        return await retrying(self._send)(method, endpoint, **kwargs)

    async def _send(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        client = await self._get_client()

        try:
            response = await client.request(
                method, endpoint, headers=self._headers(), **kwargs
            )
        except httpx.TimeoutException as e:
            raise AuthorityConnectionError(f"Request timeout: {endpoint}") from e
        except httpx.RequestError as e:
            raise AuthorityConnectionError(f"Request error: {str(e)}") from e

        if response.status_code >= 500:
            raise AuthorityConnectionError(
                f"Gateway error: {response.status_code}",
                status_code=response.status_code,
                details=response.text[:500],
            )

        data = decode_gateway_json(response.text)

        if response.status_code >= 400 or data.get("exito") is False:
            raise AuthorityBusinessError(
                data.get("mensaje") or f"API error: {response.status_code}",
                status_code=response.status_code,
                details=data.get("errores") or None,
            )

        return data

    async def authenticate(self) -> None:
        """Open a SAT session on the gateway with the FIEL."""
        files = self.credential_files
        with open(files.cer_path, "rb") as cer, open(files.key_path, "rb") as key:
            data = await self._request(
                "POST",
                "/api/sesion",
                files={
                    "certificado_cer": (files.cer_path.name, cer.read()),
                    "certificado_key": (files.key_path.name, key.read()),
                },
                data={"password": files.password},
            )

        token = data.get("token")
        if not token:
            raise AuthorityBusinessError("El servicio SAT no devolvió una sesión")
        self._token = str(token)
        logger.info("SAT session opened")

    async def query_by_period(
        self,
        start_date: date,
        end_date: date,
        direction: Direction,
    ) -> List[AuthorityMetadata]:
        """
        List CFDI metadata for a period.

        Args:
            start_date: First day of the period
            end_date: Last day of the period
            direction: Issued or received documents

        Returns:
            List of AuthorityMetadata in SAT order
        """
        data = await self._request(
            "POST",
            "/api/metadata",
            json={
                "fecha_inicio": start_date.isoformat(),
                "fecha_final": end_date.isoformat(),
                "tipo": direction.value,
            },
        )

        items = data.get("items") or []
        if isinstance(items, dict):
            items = [dict(value, uuid=value.get("uuid") or key) for key, value in items.items()]

        metadata = [AuthorityMetadata.from_dict(item) for item in items if isinstance(item, dict)]
        logger.info(
            "SAT metadata listed",
            direction=direction.value,
            total=len(metadata),
        )
        return metadata

    async def fetch_document_bodies(
        self,
        uuids: Iterable[str],
        direction: Direction,
        concurrency_limit: int,
    ) -> Dict[str, DocumentBody]:
        """
        Download XML bodies, at most `concurrency_limit` at a time.

        Each uuid succeeds or fails on its own; failures are reported in the
        returned DocumentBody and never abort the batch.
        """
        semaphore = asyncio.Semaphore(max(1, concurrency_limit))
        unique = list(dict.fromkeys(uuids))

        async def fetch(uuid: str) -> DocumentBody:
            async with semaphore:
                return await self._fetch_one(uuid, direction)

        results = await asyncio.gather(*(fetch(uuid) for uuid in unique))

        downloaded = sum(1 for r in results if r.ok)
        logger.info(
            "XML bodies downloaded",
            requested=len(unique),
            downloaded=downloaded,
            failed=len(unique) - downloaded,
        )
        return {r.uuid: r for r in results}

    async def _fetch_one(self, uuid: str, direction: Direction) -> DocumentBody:
        try:
            data = await self._request(
                "POST",
                "/api/xml",
                json={"uuid": uuid, "tipo": direction.value},
            )
        except AuthorityConnectionError as e:
            logger.warning("Failed to download CFDI", uuid=uuid, error=str(e))
            return DocumentBody(uuid=uuid, error=f"Request error: {e}")
        except AuthorityBusinessError as e:
            logger.warning("Failed to download CFDI", uuid=uuid, error=str(e))
            return DocumentBody(uuid=uuid, error=f"Response error: {e}")

        xml = data.get("xml")
        if not xml:
            return DocumentBody(uuid=uuid, error="Download error: respuesta sin XML")
        return DocumentBody(uuid=uuid, body=str(xml))
