"""
Application configuration.

Responsibilities:
- Read environment variables (XUNFEI_*, with VITE_XUNFEI_* fallbacks)
- Provide a typed, immutable config object
- Fail fast on missing credentials, before any network activity

Non-responsibilities:
- No protocol constants (see spec.py)
- No runtime mutation

Entry points are expected to call dotenv.load_dotenv() before load_from_env().
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from errors import ConfigurationError, MissingCredentials
from protocol.frames import IatParameters
from spec import (
    IAT_DEFAULT_ACCENT,
    IAT_DEFAULT_DOMAIN,
    IAT_DEFAULT_EOS_MS,
    IAT_DEFAULT_HOST,
    IAT_DEFAULT_LANGUAGE,
    IAT_DEFAULT_PATH,
    RAASR_GET_RESULT_URL,
    RAASR_UPLOAD_URL,
)

_ENV_PREFIXES = ("", "VITE_")


def _env(name: str, default: str | None = None) -> str | None:
    """First non-empty value among NAME and VITE_NAME."""
    for prefix in _ENV_PREFIXES:
        value = os.environ.get(prefix + name)
        if value:
            return value
    return default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float | None) -> float | None:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _parse_device(raw: str | None) -> int | str | None:
    if raw is None:
        return None
    return int(raw) if raw.isdigit() else raw


@dataclass(frozen=True)
class IatConfig:
    """
    Immutable recognition client configuration.

    Constructed once by the embedding application and passed to recognizers.
    """

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    app_id: str | None = None
    api_key: str | None = None
    api_secret: str | None = None
    secret_key: str | None = None  # recorded-file API only

    # ------------------------------------------------------------------
    # Streaming endpoint + recognition parameters
    # ------------------------------------------------------------------

    host: str = IAT_DEFAULT_HOST
    path: str = IAT_DEFAULT_PATH
    domain: str = IAT_DEFAULT_DOMAIN
    language: str = IAT_DEFAULT_LANGUAGE
    accent: str = IAT_DEFAULT_ACCENT
    eos_ms: int = IAT_DEFAULT_EOS_MS

    # ------------------------------------------------------------------
    # Optional enhancements (off by default)
    # ------------------------------------------------------------------

    connect_timeout_s: float | None = None
    stop_drain_s: float = 0.0

    # ------------------------------------------------------------------
    # Audio input
    # ------------------------------------------------------------------

    input_device: int | str | None = None

    # ------------------------------------------------------------------
    # Recorded-file endpoints
    # ------------------------------------------------------------------

    raasr_upload_url: str = RAASR_UPLOAD_URL
    raasr_get_result_url: str = RAASR_GET_RESULT_URL

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def parameters(self) -> IatParameters:
        return IatParameters(
            domain=self.domain,
            language=self.language,
            accent=self.accent,
            eos_ms=self.eos_ms,
        )

    def is_configured(self) -> bool:
        return bool(self.app_id and self.api_key and self.api_secret)

    def require_credentials(self) -> None:
        """
        Raises:
            MissingCredentials naming every absent streaming credential.
        """
        missing = tuple(
            name for name, value in (
                ("XUNFEI_APP_ID", self.app_id),
                ("XUNFEI_API_KEY", self.api_key),
                ("XUNFEI_API_SECRET", self.api_secret),
            ) if not value
        )
        if missing:
            raise MissingCredentials(missing)

    def require_raasr_credentials(self) -> None:
        """
        Raises:
            MissingCredentials naming every absent recorded-file credential.
        """
        missing = tuple(
            name for name, value in (
                ("XUNFEI_APP_ID", self.app_id),
                ("XUNFEI_SECRET_KEY", self.secret_key),
            ) if not value
        )
        if missing:
            raise MissingCredentials(missing)

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> IatConfig:
        """
        Load configuration from environment variables.

        Credentials are NOT validated here; recognizers call
        require_credentials() when a session starts.

        Raises:
            ConfigurationError if a numeric variable does not parse.
        """
        return IatConfig(
            app_id=_env("XUNFEI_APP_ID"),
            api_key=_env("XUNFEI_API_KEY"),
            api_secret=_env("XUNFEI_API_SECRET"),
            secret_key=_env("XUNFEI_SECRET_KEY"),

            host=_env("XUNFEI_IAT_HOST", IAT_DEFAULT_HOST) or IAT_DEFAULT_HOST,
            path=_env("XUNFEI_IAT_PATH", IAT_DEFAULT_PATH) or IAT_DEFAULT_PATH,
            domain=_env("XUNFEI_IAT_DOMAIN", IAT_DEFAULT_DOMAIN) or IAT_DEFAULT_DOMAIN,
            language=_env("XUNFEI_IAT_LANGUAGE", IAT_DEFAULT_LANGUAGE) or IAT_DEFAULT_LANGUAGE,
            accent=_env("XUNFEI_IAT_ACCENT", IAT_DEFAULT_ACCENT) or IAT_DEFAULT_ACCENT,
            eos_ms=_env_int("XUNFEI_IAT_VAD_EOS", IAT_DEFAULT_EOS_MS),

            connect_timeout_s=_env_float("XUNFEI_IAT_CONNECT_TIMEOUT_S", None),
            stop_drain_s=_env_float("XUNFEI_IAT_STOP_DRAIN_S", 0.0) or 0.0,

            input_device=_parse_device(_env("XUNFEI_INPUT_DEVICE")),

            raasr_upload_url=_env("XUNFEI_RAASR_UPLOAD_URL", RAASR_UPLOAD_URL) or RAASR_UPLOAD_URL,
            raasr_get_result_url=(
                _env("XUNFEI_RAASR_GET_RESULT_URL", RAASR_GET_RESULT_URL) or RAASR_GET_RESULT_URL
            ),
        )
