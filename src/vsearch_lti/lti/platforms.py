"""
Platform trust bootstrap.

Registers the platforms listed in ``VSG_PLATFORMS`` with the trust store,
once per URL.  Runs during startup before any grade request is served.
Each entry is handled on its own: a bad or failing entry is logged and the
rest still register.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from vsearch_lti.exceptions import PlatformRegistrationError

from .models import AuthConfig, PlatformRegistration
from .provider import LtiAdvantageProvider

JWK_SET = "JWK_SET"


@dataclass(frozen=True)
class PlatformSpec:
    """One ``name,url,clientId,authEndpoint,tokenEndpoint,jwksKey[,deployments]`` tuple."""

    name: Optional[str]
    url: Optional[str]
    client_id: Optional[str]
    authentication_endpoint: Optional[str] = None
    access_token_endpoint: Optional[str] = None
    jwks_key: Optional[str] = None
    deployment_ids: tuple[str, ...] = ()
    raw: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.name and self.url and self.client_id)

    def to_registration(self) -> PlatformRegistration:
        return PlatformRegistration(
            url=self.url,
            name=self.name,
            client_id=self.client_id,
            authentication_endpoint=self.authentication_endpoint,
            access_token_endpoint=self.access_token_endpoint,
            auth_config=AuthConfig(method=JWK_SET, key=self.jwks_key),
            deployment_ids=list(self.deployment_ids),
        )


def parse_platforms(raw: str) -> list[PlatformSpec]:
    """Split the ``;``-separated platform list into specs, keeping order."""
    specs = []
    for entry in (raw or "").split(";"):
        if not entry.strip():
            continue
        fields = [f.strip() or None for f in entry.split(",")]
        fields += [None] * (7 - len(fields))
        name, url, client_id, auth, token, jwks, deployments = fields[:7]
        specs.append(
            PlatformSpec(
                name=name,
                url=url,
                client_id=client_id,
                authentication_endpoint=auth,
                access_token_endpoint=token,
                jwks_key=jwks,
                deployment_ids=tuple(d for d in (deployments or "").split("|") if d),
                raw=entry.strip(),
            )
        )
    return specs


@dataclass
class BootstrapReport:
    registered: list[str] = field(default_factory=list)
    already_registered: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class PlatformRegistry:
    def __init__(self, provider: LtiAdvantageProvider, logger: Optional[logging.Logger] = None):
        self._provider = provider
        self._log = logger or logging.getLogger(__name__)

    def _register_one(self, spec: PlatformSpec) -> bool:
        """Register *spec* unless its URL is known. Returns True if it registered."""
        try:
            if self._provider.get_platform(spec.url):
                return False
            self._provider.register_platform(spec.to_registration())
            return True
        except Exception as e:
            raise PlatformRegistrationError(spec.url, str(e)) from e

    def bootstrap(self, entries: list[PlatformSpec]) -> BootstrapReport:
        report = BootstrapReport()

        if not entries:
            self._log.info("No platforms configured - using dynamic registration only")
            return report

        for spec in entries:
            if not spec.is_complete:
                self._log.warning("Skipping incomplete platform config: %s", spec.raw)
                report.skipped.append(spec.raw)
                continue

            try:
                registered = self._register_one(spec)
            except PlatformRegistrationError as e:
                self._log.error("Failed to register platform %s: %s", spec.name, e.message)
                report.failed.append(spec.url)
                continue

            if registered:
                self._log.info("Registered platform: %s (%s)", spec.name, spec.url)
                report.registered.append(spec.url)
            else:
                self._log.info("Platform already registered: %s (%s)", spec.name, spec.url)
                report.already_registered.append(spec.url)

        return report
