"""Authentication helpers for Databricks.

This module centralizes creation of a Databricks WorkspaceClient for the
exporter's service principal and applies small but important normalization
rules (such as sanitizing the host URL) to avoid subtle SDK and API issues.
"""

from __future__ import annotations

from databricks.sdk import WorkspaceClient
from databricks.sdk.core import Config

from dbexporter.core.config import ScrapeConfig


class AuthError(RuntimeError):
    """Raised when Databricks authentication fails."""


def _sanitize_host(host: str | None) -> str | None:
    """
    Normalize a Databricks host URL.

    - Adds the https:// scheme when only a hostname is given
    - Removes query strings (e.g. '?o=123456789')
    - Removes trailing slashes
    """
    if not host:
        return host
    host = host.strip()
    if "://" not in host:
        host = f"https://{host}"
    host = host.split("?", 1)[0]
    return host.rstrip("/")


def get_client(config: ScrapeConfig) -> WorkspaceClient:
    """
    Create a WorkspaceClient authenticated as the configured service principal.

    OAuth machine-to-machine credentials (client id and secret) are used,
    matching how the exporter is deployed against a workspace.

    Raises:
        AuthError: If the SDK rejects the configuration.
    """
    try:
        cfg = Config(
            host=_sanitize_host(config.server_hostname),
            client_id=config.client_id,
            client_secret=config.client_secret,
            auth_type="oauth-m2m",
        )
    except ValueError as exc:
        raise AuthError(f"Databricks authentication failed: {exc}") from exc
    return WorkspaceClient(config=cfg)
