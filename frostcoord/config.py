"""Coordinator configuration."""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Coordinator settings loaded from FROSTCOORD_* environment variables."""

    # Upper bound on the participant set of a single DKG or signing session
    max_participants: int = 64

    # Seconds from creation until a session stops accepting contributions
    dkg_session_timeout: int = 3600
    signing_session_timeout: int = 3600

    # Encrypted DKG shares are opaque, only their size is bounded
    max_share_payload_bytes: int = 1024

    # Default for the per-session "shares collected >= threshold" policy at finalize
    enforce_threshold: bool = True

    # Only registered custodians may take part in a DKG
    restrict_to_custodians: bool = False

    model_config = SettingsConfigDict(env_prefix="FROSTCOORD_", env_file=".env", case_sensitive=False)

    @model_validator(mode="after")
    def _check_bounds(self) -> "Settings":
        for name in ("max_participants", "dkg_session_timeout", "signing_session_timeout",
                     "max_share_payload_bytes"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.max_participants < 2:
            raise ValueError("max_participants must allow at least 2 participants")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
