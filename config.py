"""Configuration management with environment variables"""
import logging
import math
import os
from dataclasses import dataclass, field, replace
from typing import List, Mapping, Optional
from urllib.parse import urlparse

from errors import ConfigurationError
from factorio_console import split_address

logger = logging.getLogger(__name__)


def _safe_int(environ: Mapping[str, str], key: str, default: int) -> int:
    """Safely parse int from env var with fallback"""
    try:
        return int(environ.get(key, str(default)))
    except (ValueError, TypeError):
        logger.warning(f"Invalid {key} env var, using default: {default}")
        return default


def _safe_float(environ: Mapping[str, str], key: str, default: float) -> float:
    """Safely parse float from env var with fallback"""
    try:
        return float(environ.get(key, str(default)))
    except (ValueError, TypeError):
        logger.warning(f"Invalid {key} env var, using default: {default}")
        return default


def _env_bool(environ: Mapping[str, str], key: str, default: bool = False) -> bool:
    value = environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _mask_url(url: str) -> str:
    """Hide the token part of a webhook URL"""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return "****" if url else ""

    parts = parsed.path.rstrip("/").split("/")
    if len(parts) > 2:
        parts[-1] = "****"
    return f"{parsed.scheme}://{parsed.netloc}{'/'.join(parts)}"


@dataclass(frozen=True)
class Config:
    """Settings read once at startup and shared read-only afterwards"""

    # RCON
    address: str = ""
    password: str = field(default="", repr=False)
    rcon_timeout: float = 10.0

    # Webhook
    webhook_url: str = field(default="", repr=False)
    webhook_timeout: float = 15.0

    # Scan loop
    poll_interval: float = 5.0

    # Logging
    debug: bool = False
    log_file_path: str = ""
    log_max_bytes: int = 10485760  # 10 MB
    log_backup_count: int = 5

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if environ is None else environ
        return cls(
            address=env.get("RCON_ADDRESS", "").strip(),
            password=env.get("RCON_PASSWORD", ""),
            rcon_timeout=_safe_float(env, "RCON_TIMEOUT", 10.0),
            webhook_url=env.get("WEBHOOK_URL", "").strip(),
            webhook_timeout=_safe_float(env, "WEBHOOK_TIMEOUT", 15.0),
            poll_interval=_safe_float(env, "POLL_INTERVAL", 5.0),
            debug=_env_bool(env, "DEBUG"),
            log_file_path=env.get("LOG_FILE_PATH", "").strip(),
            log_max_bytes=_safe_int(env, "LOG_MAX_BYTES", 10485760),
            log_backup_count=_safe_int(env, "LOG_BACKUP_COUNT", 5),
        )

    def merge(self, **overrides) -> "Config":
        """Return a copy with every non-None override applied"""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []

        if not self.address:
            issues.append("RCON address is not set (--addr / RCON_ADDRESS)")
        else:
            try:
                split_address(self.address)
            except ValueError as e:
                issues.append(str(e))

        if not self.password:
            issues.append("RCON password is not set (--pass / RCON_PASSWORD)")

        if not self.webhook_url:
            issues.append("Webhook URL is not set (--hook / WEBHOOK_URL)")
        else:
            parsed = urlparse(self.webhook_url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                issues.append(f"Webhook URL must be an http(s) URL (got {_mask_url(self.webhook_url)!r})")

        if not math.isfinite(self.poll_interval) or self.poll_interval <= 0:
            issues.append(f"Poll interval must be a finite number > 0 (got {self.poll_interval})")
        if not math.isfinite(self.rcon_timeout) or self.rcon_timeout <= 0:
            issues.append(f"RCON timeout must be a finite number > 0 (got {self.rcon_timeout})")
        if not math.isfinite(self.webhook_timeout) or self.webhook_timeout <= 0:
            issues.append(f"Webhook timeout must be a finite number > 0 (got {self.webhook_timeout})")
        if self.log_max_bytes < 0 or self.log_backup_count < 0:
            issues.append("Log rotation settings must not be negative")

        return issues

    def ensure_valid(self) -> "Config":
        issues = self.validate()
        if issues:
            raise ConfigurationError(issues)
        return self

    def display(self) -> str:
        """Return formatted configuration display"""
        log_file = self.log_file_path or "(console only)"
        return (
            "Configuration:\n"
            f"• RCON: {self.address} (timeout {self.rcon_timeout}s)\n"
            f"• Webhook: {_mask_url(self.webhook_url)} (timeout {self.webhook_timeout}s)\n"
            f"• Poll Interval: {self.poll_interval}s\n"
            f"• Log File: {log_file}\n"
            f"• Debug: {'✅ Enabled' if self.debug else '❌ Disabled'}"
        )
