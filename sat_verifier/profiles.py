"""
Business profiles.

Each business (empresa) keeps its SAT verifier settings in
`{profiles_dir}/{empresa}.json`:

{
    "empresa": "acme",
    "nombre": "ACME SA de CV",
    "verificador_sat": {
        "fiel": "fiel/acme.cer",
        "llave_fiel": "fiel/acme.key",
        "clave_fiel": "<Fernet token>"
    }
}

Relative credential paths resolve against `settings.data_dir`.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from .config import Settings, get_settings

logger = structlog.get_logger()

_PROFILE_ID = re.compile(r"^[A-Za-z0-9_\-]+$")


class ProfileNotFoundError(Exception):
    """Raised when a business profile does not exist or cannot be read."""


@dataclass
class SatVerifierSettings:
    """Where the business's FIEL lives and its encrypted password."""
    cer_path: Optional[Path] = None
    key_path: Optional[Path] = None
    encrypted_password: str = ""

    @property
    def is_configured(self) -> bool:
        return self.cer_path is not None and self.key_path is not None


@dataclass
class BusinessProfile:
    """A business the verifier runs for."""
    empresa: str
    nombre: str = ""
    verificador_sat: Optional[SatVerifierSettings] = None

    @property
    def has_verifier(self) -> bool:
        return self.verificador_sat is not None and self.verificador_sat.is_configured

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "BusinessProfile":
        def resolve(value: Any) -> Optional[Path]:
            if not value:
                return None
            path = Path(str(value))
            if not path.is_absolute() and base_dir is not None:
                path = base_dir / path
            return path

        verifier = data.get("verificador_sat")
        settings = None
        if isinstance(verifier, dict) and verifier:
            settings = SatVerifierSettings(
                cer_path=resolve(verifier.get("fiel")),
                key_path=resolve(verifier.get("llave_fiel")),
                encrypted_password=str(verifier.get("clave_fiel") or ""),
            )

        return cls(
            empresa=str(data.get("empresa", "")),
            nombre=str(data.get("nombre", "")),
            verificador_sat=settings,
        )


def load_profile(empresa: str, settings: Optional[Settings] = None) -> BusinessProfile:
    """
    Load one business profile.

    Raises:
        ProfileNotFoundError: unknown business or unreadable file
    """
    settings = settings or get_settings()

    if not empresa or not _PROFILE_ID.match(empresa):
        raise ProfileNotFoundError(f"Empresa inválida: {empresa!r}")

    path = settings.resolved_profiles_dir / f"{empresa}.json"
    if not path.exists():
        raise ProfileNotFoundError(f"No existe la empresa: {empresa}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ProfileNotFoundError(f"No se pudo leer la empresa: {empresa}") from e

    if not isinstance(data, dict):
        raise ProfileNotFoundError(f"Formato de empresa inválido: {empresa}")

    data.setdefault("empresa", empresa)
    profile = BusinessProfile.from_dict(data, base_dir=settings.data_dir)
    logger.debug("Business profile loaded", empresa=empresa, has_verifier=profile.has_verifier)
    return profile
