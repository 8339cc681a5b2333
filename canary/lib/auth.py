"""Request authentication for the write and read endpoints.

Builds the tenant header and the credentials sent with every remote
write and query. Credential values may reference environment variables
(${VAR_NAME}), expanded when the headers are built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from canary.lib.env import expand_env_vars

logger = logging.getLogger(__name__)

__all__ = ["TENANT_HEADER", "AuthConfig", "build_auth_headers"]

TENANT_HEADER = "X-Scope-OrgID"


@dataclass
class AuthConfig:
    """Tenant and credentials for the backend.

    Basic auth and a bearer token are mutually exclusive.

    Examples:
        AuthConfig(tenant_id="anonymous")
        AuthConfig(tenant_id="team-a", bearer_token="${CANARY_TOKEN}")
        AuthConfig(basic_auth_user="${USER}", basic_auth_password="${PASS}")
    """

    tenant_id: str = ""
    basic_auth_user: str | None = None
    basic_auth_password: str | None = None
    bearer_token: str | None = None

    def __post_init__(self) -> None:
        if self.bearer_token and (self.basic_auth_user or self.basic_auth_password):
            raise ValueError("Configure either basic auth or a bearer token, not both")
        if bool(self.basic_auth_user) != bool(self.basic_auth_password):
            raise ValueError(
                "Basic authentication requires both 'basic_auth_user' and 'basic_auth_password'"
            )


def build_auth_headers(
    config: AuthConfig | None,
) -> Tuple[Dict[str, str], Tuple[str, str] | None]:
    """Build HTTP headers and the basic auth tuple for requests.

    Returns:
        Tuple of (headers dict, optional basic auth tuple)

    Raises:
        ValueError: If a referenced credential resolves to an empty string
        KeyError: If a referenced environment variable is unset
    """
    headers: Dict[str, str] = {}
    auth_tuple: Tuple[str, str] | None = None

    if config is None:
        return headers, auth_tuple

    if config.tenant_id:
        headers[TENANT_HEADER] = expand_env_vars(config.tenant_id, strict=True)

    if config.bearer_token:
        token = expand_env_vars(config.bearer_token, strict=True)
        if not token:
            raise ValueError("Bearer token resolved to empty string")
        headers["Authorization"] = f"Bearer {token}"
        logger.debug("Added bearer token authentication")
    elif config.basic_auth_user:
        username = expand_env_vars(config.basic_auth_user, strict=True)
        password = expand_env_vars(config.basic_auth_password or "", strict=True)
        if not (username and password):
            raise ValueError("Basic auth username or password resolved to empty string")
        auth_tuple = (username, password)
        logger.debug("Prepared basic authentication")

    return headers, auth_tuple
