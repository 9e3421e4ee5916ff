"""
Centralized configuration management for the PDF signer.

Pydantic v2 settings management to enforce strict validation and
fast-failure on invalid configuration. Values are read from the
environment (``PDFSIGNER_*``) or an optional ``.env`` file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional, Tuple

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pdfsigner.app.services.identity import (
    IdentityAttribute,
    SERIAL_NUMBER_ATTRIBUTE,
)


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

StoreDirectory = Annotated[
    Path,
    Field(description="Directory holding one credential store scope"),
]

SensitiveEnv = Annotated[
    Optional[SecretStr],
    Field(
        default=None,
        description="Sensitive credential, redacted from logs",
    ),
]

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Fails fast if a value is malformed. Every setting has a usable
    default so the CLI works without any configuration.
    """

    # ---------------------------------------------------------------------
    # Credential store
    # ---------------------------------------------------------------------

    user_store_dir: StoreDirectory = Field(
        default_factory=lambda: Path.home() / ".pdfsigner" / "certs",
    )
    machine_store_dir: StoreDirectory = Path("/etc/pdfsigner/certs")

    store_passphrase: SensitiveEnv

    # ---------------------------------------------------------------------
    # Signature metadata
    # ---------------------------------------------------------------------

    default_reason: Annotated[
        str,
        Field(
            default="Document digitally signed",
            description="Reason embedded when none is given",
        ),
    ]

    default_location: Annotated[
        str,
        Field(
            default="",
            description="Location embedded when none is given",
        ),
    ]

    output_suffix: Annotated[
        str,
        Field(
            default="-sig",
            description="Inserted before the extension of batch outputs",
        ),
    ]

    # ---------------------------------------------------------------------
    # Identity matching
    # ---------------------------------------------------------------------

    identity_attribute_keys: Annotated[
        Tuple[str, ...],
        Field(
            default=SERIAL_NUMBER_ATTRIBUTE.keys,
            min_length=1,
            description=(
                "Subject DN keys accepted as the signer identity "
                "attribute (case-insensitive)"
            ),
        ),
    ]

    identity_attribute_label: Annotated[
        str,
        Field(
            default=SERIAL_NUMBER_ATTRIBUTE.label,
            description="Name of the identity attribute used in messages",
        ),
    ]

    require_identity_attribute: Annotated[
        bool,
        Field(
            default=False,
            description=(
                "Refuse to sign with a certificate whose subject has no "
                "identity attribute. When false, such documents are signed "
                "and verification is skipped with a warning."
            ),
        ),
    ]

    require_whole_document_coverage: Annotated[
        bool,
        Field(
            default=False,
            description=(
                "Treat any signature that does not cover the whole file as "
                "invalid, including signatures superseded by later ones."
            ),
        ),
    ]

    verify_after_batch_signing: Annotated[
        bool,
        Field(
            default=True,
            description="Run targeted verification for each batch output",
        ),
    ]

    # ---------------------------------------------------------------------
    # Diagnostics
    # ---------------------------------------------------------------------

    log_level: Annotated[
        str,
        Field(default="WARNING", description="Root log level for the CLI"),
    ]

    model_config = SettingsConfigDict(
        env_prefix="PDFSIGNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @field_validator("identity_attribute_keys")
    @classmethod
    def keys_not_blank(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        cleaned = tuple(k.strip() for k in v if k and k.strip())
        if not cleaned:
            raise ValueError("identity_attribute_keys must not be empty")
        return cleaned

    @field_validator("identity_attribute_label")
    @classmethod
    def label_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("identity_attribute_label must not be empty")
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(
                f"Unsupported log_level '{v}'. "
                f"Allowed values: {sorted(_LOG_LEVELS)}"
            )
        return level

    @property
    def identity_attribute(self) -> IdentityAttribute:
        return IdentityAttribute(
            label=self.identity_attribute_label,
            keys=self.identity_attribute_keys,
        )

    @property
    def store_passphrase_bytes(self) -> Optional[bytes]:
        if self.store_passphrase is None:
            return None
        value = self.store_passphrase.get_secret_value()
        return value.encode("utf-8") if value else None


# -------------------------------------------------------------------------
# Settings Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings()
