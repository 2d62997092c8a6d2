from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from urllib.parse import urlparse

from .domain.account import Environment


def _default_email_domain() -> str:
    public_url = os.getenv("PUBLIC_URL", "")
    if public_url:
        hostname = urlparse(public_url).hostname
        if hostname:
            return hostname
    return os.getenv("EMAIL_DOMAIN", "personatestuser.org")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration values exposed to the service components."""

    app_name: str = "testuser-service"
    version: str = "0.1.0"
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    key_prefix: str = os.getenv("KEY_PREFIX", "ptu")
    email_domain: str = _default_email_domain()
    password_length: int = int(os.getenv("PASSWORD_LENGTH", "16"))
    staging_ttl_seconds: int = int(os.getenv("STAGING_TTL_SECONDS", "3600"))
    verify_initial_interval_ms: int = int(os.getenv("VERIFY_INITIAL_INTERVAL_MS", "50"))
    verify_deadline_ms: int = int(os.getenv("VERIFY_DEADLINE_MS", "5000"))
    verify_max_interval_ms: int = int(os.getenv("VERIFY_MAX_INTERVAL_MS", "100"))
    keypair_algorithm: str = os.getenv("KEYPAIR_ALGORITHM", "RS").upper()
    keypair_keysize: int = int(os.getenv("KEYPAIR_KEYSIZE", "2048"))
    assertion_duration_ms: int = int(os.getenv("ASSERTION_DURATION_MS", str(60 * 60 * 1000)))
    idp_prod_url: str = os.getenv("IDP_PROD_URL", "https://login.persona.org")
    idp_stage_url: str = os.getenv("IDP_STAGE_URL", "https://login.anosrep.org")
    idp_dev_url: str = os.getenv("IDP_DEV_URL", "https://login.dev.anosrep.org")
    idp_timeout_seconds: float = float(os.getenv("IDP_TIMEOUT_SECONDS", "10"))
    verification_channel_prefix: str = os.getenv("VERIFICATION_CHANNEL_PREFIX", "ptu:verified")
    sweep_interval_seconds: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))

    def idp_base_url(self, env: Environment) -> str:
        """Return the IdP deployment URL configured for ``env``."""
        urls = {
            Environment.prod: self.idp_prod_url,
            Environment.stage: self.idp_stage_url,
            Environment.dev: self.idp_dev_url,
        }
        return urls[env].rstrip("/")

    def verification_channel(self, env: Environment) -> str:
        return f"{self.verification_channel_prefix}:{env.value}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance for the running process."""
    return Settings()
