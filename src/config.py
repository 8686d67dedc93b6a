"""
ChapterIP - Engine Configuration

All environment lookups happen here, once, at startup. Services receive the
resulting EngineConfig (or the objects built from it) instead of reading
the environment themselves.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from errors import ValidationError
from license_tiers import LAP_POLICY_ENV_VARS, LRP_POLICY_ENV_VARS

DEFAULT_STORAGE_BACKEND = "memory"
STORAGE_BACKENDS = ("memory", "file", "json")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValidationError(f"{name} must be a number, got {value!r}") from e


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from e


@dataclass(frozen=True)
class EngineConfig:
    """
    Process configuration for the licensing and royalty engine.

    Usage:
        config = EngineConfig.from_env()
        engine = create_engine(config)
    """

    ledger_endpoint: str = ""
    ledger_secret: str | None = None
    ledger_verify_ssl: bool = True
    similarity_endpoint: str = ""
    similarity_model: str = ""
    storage_backend: str = DEFAULT_STORAGE_BACKEND
    storage_dir: str = "data"
    storage_public_url: str = ""
    bulk_batch_size: int = 5
    bulk_batch_delay: float = 1.0
    api_key: str | None = None
    log_level: str = "INFO"
    log_format: str = "console"
    # Policy address variables, forwarded to the tier registry
    policy_env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValidationError(
                f"Unknown storage backend: {self.storage_backend}",
                {"allowed": list(STORAGE_BACKENDS)},
            )
        if self.bulk_batch_size < 1:
            raise ValidationError("BULK_BATCH_SIZE must be at least 1")
        if self.bulk_batch_delay < 0:
            raise ValidationError("BULK_BATCH_DELAY cannot be negative")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "EngineConfig":
        """
        Read configuration from environment variables.

        Raises:
            ValidationError: If a numeric or enumerated variable is malformed
        """
        env = os.environ if env is None else env
        policy_names = LAP_POLICY_ENV_VARS + LRP_POLICY_ENV_VARS

        return cls(
            ledger_endpoint=env.get("CHAPTERIP_LEDGER_ENDPOINT", ""),
            ledger_secret=env.get("CHAPTERIP_LEDGER_SECRET") or None,
            ledger_verify_ssl=env.get("CHAPTERIP_LEDGER_VERIFY_SSL", "true").lower() != "false",
            similarity_endpoint=env.get("CHAPTERIP_SIMILARITY_ENDPOINT", ""),
            similarity_model=env.get("CHAPTERIP_SIMILARITY_MODEL", ""),
            storage_backend=env.get("STORAGE_BACKEND", DEFAULT_STORAGE_BACKEND).lower(),
            storage_dir=env.get("STORAGE_DIR", "data"),
            storage_public_url=env.get("STORAGE_PUBLIC_URL", ""),
            bulk_batch_size=_env_int(env, "BULK_BATCH_SIZE", 5),
            bulk_batch_delay=_env_float(env, "BULK_BATCH_DELAY", 1.0),
            api_key=env.get("CHAPTERIP_API_KEY") or None,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_format=env.get("LOG_FORMAT", "console").lower(),
            policy_env={name: env[name] for name in policy_names if name in env},
        )

    def to_dict(self) -> dict[str, Any]:
        """Configuration with secrets masked."""
        return {
            "ledgerEndpoint": self.ledger_endpoint,
            "ledgerSecretConfigured": bool(self.ledger_secret),
            "similarityEndpoint": self.similarity_endpoint,
            "similarityModel": self.similarity_model,
            "storageBackend": self.storage_backend,
            "storageDir": self.storage_dir,
            "bulkBatchSize": self.bulk_batch_size,
            "bulkBatchDelay": self.bulk_batch_delay,
            "apiKeyConfigured": bool(self.api_key),
            "logLevel": self.log_level,
            "logFormat": self.log_format,
        }
