"""
FIEL (e.firma) credential handling.

Opens the certificate/private key pair, checks it can be used to query the
SAT and writes short-lived copies for the gateway upload.
"""

import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional
from uuid import uuid4

import structlog
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from ..models import ErrorKind

logger = structlog.get_logger()


class CredentialError(Exception):
    """Raised when the FIEL cannot be used. Carries the error classification."""
    def __init__(self, kind: ErrorKind, message: str, detail: str = ""):
        super().__init__(message)
        self.kind = kind
        self.detail = detail or message


@dataclass
class FielCredential:
    """An opened FIEL: certificate plus the key material it was read from."""
    certificate: x509.Certificate
    cer_bytes: bytes
    key_bytes: bytes
    password: str

    @property
    def is_fiel(self) -> bool:
        """
        FIEL certificates carry no organizational unit; CSD (seal)
        certificates name the branch there.
        """
        units = self.certificate.subject.get_attributes_for_oid(
            NameOID.ORGANIZATIONAL_UNIT_NAME
        )
        return not any(str(u.value).strip() for u in units)

    @property
    def rfc(self) -> str:
        """RFC from the x500UniqueIdentifier attribute ("RFC / CURP")."""
        attrs = self.certificate.subject.get_attributes_for_oid(
            NameOID.X500_UNIQUE_IDENTIFIER
        )
        if not attrs:
            return ""
        return str(attrs[0].value).split("/")[0].strip()

    def is_valid_on(self, moment: Optional[datetime] = None) -> bool:
        moment = moment or datetime.now(timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        cert = self.certificate
        return cert.not_valid_before_utc <= moment <= cert.not_valid_after_utc


@dataclass
class CredentialFiles:
    """Paths of temporary credential copies plus the password."""
    cer_path: Path
    key_path: Path
    password: str


def decrypt_password(token: str, encryption_key: Optional[str]) -> str:
    """
    Decrypt the stored FIEL password (Fernet token).

    Raises:
        CredentialError: key not configured or token unreadable
    """
    if not encryption_key:
        raise CredentialError(
            ErrorKind.CONFIG_MISSING,
            "Configuración requerida",
            "No se configuró la llave de cifrado de la FIEL.",
        )
    try:
        return Fernet(encryption_key.encode()).decrypt(token.encode()).decode("utf-8")
    except (InvalidToken, ValueError) as e:
        raise CredentialError(
            ErrorKind.CREDENTIAL_INVALID,
            "Contraseña inválida",
            "La contraseña de la FIEL está vacía o es inválida.",
        ) from e


def encrypt_password(password: str, encryption_key: str) -> str:
    """Encrypt a FIEL password for storage in a business profile."""
    return Fernet(encryption_key.encode()).encrypt(password.encode("utf-8")).decode()


def load_certificate(data: bytes) -> x509.Certificate:
    """Load a certificate in DER (SAT .cer) or PEM form."""
    if data.lstrip().startswith(b"-----BEGIN"):
        return x509.load_pem_x509_certificate(data)
    return x509.load_der_x509_certificate(data)


def _load_private_key(data: bytes, password: str):
    secret = password.encode("utf-8")
    if data.lstrip().startswith(b"-----BEGIN"):
        return serialization.load_pem_private_key(data, password=secret)
    return serialization.load_der_private_key(data, password=secret)


def _public_der(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def ensure_credential_files(cer_path: Path, key_path: Path) -> None:
    """Raise CREDENTIAL_FILE_MISSING unless both FIEL files exist."""
    if not Path(cer_path).exists():
        raise CredentialError(
            ErrorKind.CREDENTIAL_FILE_MISSING,
            "Archivo de certificado no encontrado",
            "No se encontró el archivo del certificado FIEL (.cer).",
        )
    if not Path(key_path).exists():
        raise CredentialError(
            ErrorKind.CREDENTIAL_FILE_MISSING,
            "Archivo de llave no encontrado",
            "No se encontró el archivo de la llave FIEL (.key).",
        )


def open_credential(cer_path: Path, key_path: Path, password: str) -> FielCredential:
    """
    Open and validate a FIEL.

    Args:
        cer_path: Certificate (.cer)
        key_path: Encrypted private key (.key)
        password: Private key password

    Returns:
        FielCredential

    Raises:
        CredentialError: missing files, wrong password, CSD instead of FIEL,
            or an expired certificate
    """
    cer_path, key_path = Path(cer_path), Path(key_path)
    ensure_credential_files(cer_path, key_path)
    if not password:
        raise CredentialError(
            ErrorKind.CREDENTIAL_INVALID,
            "Contraseña inválida",
            "La contraseña de la FIEL está vacía o es inválida.",
        )

    cer_bytes = cer_path.read_bytes()
    key_bytes = key_path.read_bytes()

    try:
        certificate = load_certificate(cer_bytes)
    except ValueError as e:
        raise CredentialError(
            ErrorKind.CREDENTIAL_INVALID, "Certificado inválido", str(e)
        ) from e

    try:
        private_key = _load_private_key(key_bytes, password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CredentialError(
            ErrorKind.CREDENTIAL_INVALID,
            "No se pudo abrir la llave privada",
            "La contraseña de la FIEL es incorrecta o la llave está dañada.",
        ) from e

    if _public_der(private_key.public_key()) != _public_der(certificate.public_key()):
        raise CredentialError(
            ErrorKind.CREDENTIAL_INVALID,
            "La llave no corresponde al certificado",
            "Certificado inválido",
        )

    credential = FielCredential(
        certificate=certificate,
        cer_bytes=cer_bytes,
        key_bytes=key_bytes,
        password=password,
    )

    if not credential.is_fiel:
        raise CredentialError(
            ErrorKind.CREDENTIAL_INVALID,
            "El certificado no corresponde a una FIEL",
            "Certificado inválido",
        )
    if not credential.is_valid_on():
        raise CredentialError(
            ErrorKind.CREDENTIAL_INVALID,
            "El certificado no está vigente",
            "Certificado vencido",
        )

    logger.info("FIEL opened", rfc=credential.rfc)
    return credential


@contextmanager
def temporary_credential_files(
    credential: FielCredential,
    storage_dir: Path,
) -> Iterator[CredentialFiles]:
    """
    Write the credential to uniquely named files for one request.
    The files are removed on every exit path.
    """
    storage_dir = Path(storage_dir)
    storage_dir.mkdir(parents=True, exist_ok=True)

    token = uuid4().hex
    cer_file = storage_dir / f"fiel_{token}.cer"
    key_file = storage_dir / f"fiel_{token}.key"

    try:
        for path, content in ((cer_file, credential.cer_bytes), (key_file, credential.key_bytes)):
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(content)

        yield CredentialFiles(
            cer_path=cer_file,
            key_path=key_file,
            password=credential.password,
        )
    finally:
        for path in (cer_file, key_file):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Failed to remove credential file", path=str(path), error=str(e))
