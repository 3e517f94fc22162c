"""External integrations: FIEL credentials and the SAT gateway."""

from .credentials import (
    CredentialError,
    CredentialFiles,
    FielCredential,
    decrypt_password,
    encrypt_password,
    ensure_credential_files,
    open_credential,
    temporary_credential_files,
)
from .sat_gateway import (
    AuthorityBusinessError,
    AuthorityConnectionError,
    AuthorityError,
    DocumentBody,
    FiscalAuthorityClient,
    SatGatewayClient,
)

__all__ = [
    "CredentialError",
    "CredentialFiles",
    "FielCredential",
    "decrypt_password",
    "encrypt_password",
    "ensure_credential_files",
    "open_credential",
    "temporary_credential_files",
    "AuthorityBusinessError",
    "AuthorityConnectionError",
    "AuthorityError",
    "DocumentBody",
    "FiscalAuthorityClient",
    "SatGatewayClient",
]
