"""
LTI tool configuration loader.

Builds a pylti1p3 ``ToolConfDict`` from the platforms in the trust store and
the tool's RSA key pair.  Keys come from files or inline PEM strings.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pylti1p3.deployment import Deployment
from pylti1p3.registration import Registration
from pylti1p3.tool_config import ToolConfDict

from vsearch_lti.settings import get_settings

from .models import PlatformRegistration
from .storage import RedisPlatformStore

logger = logging.getLogger(__name__)

_BASE_DIR = Path(__file__).resolve().parents[3]  # project root


def _load_key(value: str) -> str:
    """Load a PEM key from a string or file path.

    If *value* starts with ``-----BEGIN``, it's treated as an inline PEM.
    Otherwise it's resolved as a file path (absolute, or relative to the
    project root).
    """
    if value.startswith("-----BEGIN"):
        return value

    path = Path(value)
    if not path.is_absolute():
        path = _BASE_DIR / path

    return path.read_text()


def platform_settings(platforms: list[PlatformRegistration]) -> dict:
    """Translate trust-store records into ``ToolConfDict`` input."""
    settings: dict[str, list[dict]] = {}
    for platform in platforms:
        settings.setdefault(platform.url, []).append(
            {
                "default": not settings.get(platform.url),
                "client_id": platform.client_id,
                "auth_login_url": platform.authentication_endpoint,
                "auth_token_url": platform.access_token_endpoint,
                "auth_audience": None,
                "key_set_url": platform.auth_config.key,
                "key_set": None,
                "deployment_ids": list(platform.deployment_ids),
            }
        )
    return settings


class TrustStoreToolConf(ToolConfDict):
    """``ToolConfDict`` over trust-store records.

    A platform registered without deployment ids accepts whatever deployment
    the launch names; one with a list only accepts those.
    """

    def __init__(self, platforms: list[PlatformRegistration]):
        super().__init__(platform_settings(platforms))
        self._open = {(p.url, p.client_id) for p in platforms if not p.deployment_ids}
        # First registration per issuer is the default one.
        self._default_client: dict[str, str] = {}
        for platform in platforms:
            self._default_client.setdefault(platform.url, platform.client_id)

    def _accepts_any(self, iss, client_id) -> bool:
        return (iss, client_id) in self._open

    def find_deployment(self, iss, deployment_id):
        deployment = super().find_deployment(iss, deployment_id)
        if deployment is None and deployment_id and self._accepts_any(iss, self._default_client.get(iss)):
            deployment = Deployment().set_deployment_id(deployment_id)
        return deployment

    def find_deployment_by_params(self, iss, deployment_id, client_id, *args, **kwargs):
        deployment = super().find_deployment_by_params(iss, deployment_id, client_id, *args, **kwargs)
        if deployment is None and deployment_id and self._accepts_any(iss, client_id):
            deployment = Deployment().set_deployment_id(deployment_id)
        return deployment


def get_tool_config(store: RedisPlatformStore) -> TrustStoreToolConf:
    """Load tool configuration for every registered platform."""
    settings = get_settings()
    platforms = store.list_platforms()
    tool_conf = TrustStoreToolConf(platforms)

    try:
        private_key = _load_key(settings.lti_private_key)
        public_key = _load_key(settings.lti_public_key)
    except FileNotFoundError:
        logger.warning(
            "LTI RSA keys not found. "
            "Generate with: openssl genrsa -out configs/lti/private.key 2048 && "
            "openssl rsa -in configs/lti/private.key -pubout -out configs/lti/public.key",
        )
        raise

    for platform in platforms:
        tool_conf.set_private_key(platform.url, private_key, client_id=platform.client_id)
        tool_conf.set_public_key(platform.url, public_key, client_id=platform.client_id)

    return tool_conf


def get_tool_jwks() -> dict:
    """The tool's public key set, independent of registered platforms."""
    public_key = _load_key(get_settings().lti_public_key)
    return {"keys": [Registration.get_jwk(public_key)]}
