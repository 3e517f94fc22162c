"""
Shared fixtures: isolated settings and generated FIEL material.
"""

import pytest
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from sat_verifier.config import Settings
from sat_verifier.integrations.credentials import encrypt_password
from sat_verifier.profiles import BusinessProfile, SatVerifierSettings


FIEL_PASSWORD = "12345678a"
FIEL_RFC = "AAA010101AAA"


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "logs",
        sat_gateway_url="http://gateway.test",
        sat_retry_attempts=1,
        sat_request_budget_seconds=5,
        fiel_encryption_key=Fernet.generate_key().decode(),
    )


@pytest.fixture
def make_fiel(tmp_path, rsa_key):
    """
    Write a certificate/key pair and return their paths.

    Options:
        unit: organizational unit (set for a CSD)
        expired: validity ended yesterday
        password: key encryption password
    """
    def _make(name="fiel", unit=None, expired=False, password=FIEL_PASSWORD):
        attributes = [
            x509.NameAttribute(NameOID.COMMON_NAME, "EMPRESA DE PRUEBA SA DE CV"),
            x509.NameAttribute(NameOID.X500_UNIQUE_IDENTIFIER, f"{FIEL_RFC} / XAXX010101000"),
        ]
        if unit:
            attributes.append(x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, unit))
        subject = x509.Name(attributes)

        now = datetime.now(timezone.utc)
        if expired:
            not_before, not_after = now - timedelta(days=730), now - timedelta(days=1)
        else:
            not_before, not_after = now - timedelta(days=1), now + timedelta(days=365)

        certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(rsa_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .sign(rsa_key, hashes.SHA256())
        )

        folder = tmp_path / "data" / "fiel"
        folder.mkdir(parents=True, exist_ok=True)
        cer_path = folder / f"{name}.cer"
        key_path = folder / f"{name}.key"
        cer_path.write_bytes(certificate.public_bytes(serialization.Encoding.DER))
        key_path.write_bytes(rsa_key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(password.encode()),
        ))
        return cer_path, key_path

    return _make


@pytest.fixture
def profile(make_fiel, settings):
    """Business with a valid FIEL and its password stored encrypted."""
    cer, key = make_fiel()
    return BusinessProfile(
        empresa="acme",
        verificador_sat=SatVerifierSettings(
            cer_path=cer,
            key_path=key,
            encrypted_password=encrypt_password(FIEL_PASSWORD, settings.fiel_encryption_key),
        ),
    )
