"""
Centralized configuration for ClientDesk.

All values that vary by deployment belong here.
Override via environment variables where marked. The company profile printed
on invoices can also come from <home>/config/settings.yaml.
"""

import logging
import os
from pathlib import Path

import yaml

from clientdesk import paths

logger = logging.getLogger(__name__)

# ============================================================
# Auth
# ============================================================

ADMIN_USERNAME: str = os.environ.get("CLIENTDESK_ADMIN_USER", "admin")
"""Username of the bootstrap account created when the users table is empty."""

ADMIN_PASSWORD: str = os.environ.get("CLIENTDESK_ADMIN_PASSWORD", "admin")

SESSION_SECRET: str = os.environ.get("CLIENTDESK_SESSION_SECRET", "dev-secret-change-me")
"""Signing key for the session cookie."""

API_TOKEN_ENV = "CLIENTDESK_API_TOKEN"
"""Env var holding an optional shared bearer token for scripted access."""

CORS_ORIGINS: str = os.environ.get("CLIENTDESK_CORS_ORIGINS", "*")

# ============================================================
# Billing
# ============================================================

CURRENCY: str = os.environ.get("CLIENTDESK_CURRENCY", "USD")

INVOICE_PREFIX: str = os.environ.get("CLIENTDESK_INVOICE_PREFIX", "INV")

INVOICE_DUE_DAYS: int = int(os.environ.get("CLIENTDESK_INVOICE_DUE_DAYS", "0"))
"""Days after the 1st of the billing month before an invoice starts aging."""

DEFAULT_PAYMENT_METHOD = "Unspecified"

# ============================================================
# Uploads
# ============================================================

MAX_UPLOAD_BYTES: int = int(os.environ.get("CLIENTDESK_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# ============================================================
# Company profile
# ============================================================

DEFAULT_PROFILE: dict[str, str] = {
    "company": "ClientDesk Digital Marketing",
    "full_name": "Account Manager",
    "email": "billing@example.com",
    "address": "",
    "currency": CURRENCY,
}

SETTINGS_FILE = "settings.yaml"


class SettingsError(ValueError):
    """settings.yaml exists but cannot be used. A server-side problem, not a bad request."""


def settings_path() -> Path:
    return paths.config_dir() / SETTINGS_FILE


def load_profile(path: str | None = None) -> dict[str, str]:
    """
    Load the company profile, overlaying settings.yaml onto the defaults.

    Expected layout:
        profile:
          company: Acme Marketing
          full_name: Jane Doe
          email: jane@acme.test
          currency: EUR

    Raises:
        SettingsError (a ValueError) if the file is not valid YAML or not a mapping.
    """
    profile = dict(DEFAULT_PROFILE)
    config_path = Path(path) if path else settings_path()
    if not config_path.exists():
        return profile

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise SettingsError(f"{config_path.name} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise SettingsError(f"{config_path.name} must contain a mapping")

    section = data.get("profile", {})
    if not isinstance(section, dict):
        raise SettingsError("'profile' in settings must be a mapping")

    for key, value in section.items():
        if key not in DEFAULT_PROFILE:
            logger.warning("Ignoring unknown profile key: %s", key)
            continue
        profile[key] = str(value)
    return profile
