"""Credential resolution with session and environment fallbacks."""

import os
from typing import List, Mapping, NamedTuple, Optional

from loguru import logger

from ..exceptions import ConfigurationMissingError
from ..models.credentials import CredentialKind, PrerequisiteReport
from .sessions import CREDENTIAL_TRANSPORT_NAMES, SessionCredentialRegistry

# Literal used by deployments to declare a secret intentionally unset.
NOT_CONFIGURED = 'not-configured'


class _Rule(NamedTuple):
    field: str
    env_vars: List[str]
    label: str


RESOLUTION_RULES = {
    CredentialKind.GITHUB_SOURCE: _Rule(
        'github_source_pat', ['GH_SOURCE_PAT', 'GITHUB_TOKEN'], 'GitHub source PAT'
    ),
    CredentialKind.GITHUB_TARGET: _Rule(
        'github_target_pat', ['GH_PAT', 'GITHUB_TOKEN'], 'GitHub target PAT'
    ),
    CredentialKind.ADO: _Rule('ado_pat', ['ADO_PAT'], 'Azure DevOps PAT'),
}


def _usable(value: Optional[str]) -> bool:
    return bool(value) and value != NOT_CONFIGURED


class CredentialResolver:
    """Pick the secret to use for a call.

    Order: the caller's session credentials, then the platform-specific
    environment variable, then the shared ``GITHUB_TOKEN`` (GitHub kinds
    only). Resolution has no side effects and never logs secret values.
    """

    def __init__(
        self,
        registry: SessionCredentialRegistry,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """Initialize resolver.

        Args:
            registry: Session credential registry
            environ: Environment mapping (defaults to ``os.environ``)
        """
        self.registry = registry
        self._environ = environ if environ is not None else os.environ

    def resolve(self, kind: CredentialKind, session_id: Optional[str] = None) -> str:
        """Resolve a secret.

        Args:
            kind: Which platform secret is needed
            session_id: Caller's session scope, if any

        Returns:
            The secret

        Raises:
            ConfigurationMissingError: If no usable secret exists
        """
        rule = RESOLUTION_RULES[kind]

        credentials = self.registry.get(session_id)
        if credentials is not None:
            value = credentials.for_kind(kind)
            if _usable(value):
                logger.debug(f'{rule.label} resolved from session {session_id}')
                return value

        for env_var in rule.env_vars:
            value = self._environ.get(env_var)
            if _usable(value):
                logger.debug(f'{rule.label} resolved from {env_var}')
                return value

        header, query_param = CREDENTIAL_TRANSPORT_NAMES[rule.field]
        raise ConfigurationMissingError(
            f'{rule.label} not configured. Provide the {header} header '
            f'(or {query_param} query parameter) when connecting, '
            f'or set {" or ".join(rule.env_vars)}.',
            header=header,
            query_param=query_param,
            env_vars=rule.env_vars,
        )

    def has(self, kind: CredentialKind, session_id: Optional[str] = None) -> bool:
        try:
            self.resolve(kind, session_id)
        except ConfigurationMissingError:
            return False
        return True

    def check_prerequisites(
        self, session_id: Optional[str] = None
    ) -> PrerequisiteReport:
        """Report which secrets are available to a caller."""
        github_source = self.has(CredentialKind.GITHUB_SOURCE, session_id)
        github_target = self.has(CredentialKind.GITHUB_TARGET, session_id)
        ado = self.has(CredentialKind.ADO, session_id)

        details = []
        if not github_source:
            details.append(
                'Missing: GH_SOURCE_PAT or GITHUB_TOKEN for source GitHub org'
            )
        if not github_target:
            details.append('Missing: GH_PAT for target GitHub org')
        if not ado:
            details.append(
                'Missing: ADO_PAT for Azure DevOps (optional if not migrating from ADO)'
            )

        return PrerequisiteReport(
            github_source=github_source,
            github_target=github_target,
            ado=ado,
            session_based=self.registry.get(session_id) is not None,
            details=details,
        )
