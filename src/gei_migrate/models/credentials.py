"""Credential models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class CredentialKind(str, Enum):
    """Which platform secret a call needs."""

    GITHUB_SOURCE = 'github_source'
    GITHUB_TARGET = 'github_target'
    ADO = 'ado'


class SessionCredentials(BaseModel):
    """Secrets supplied by one client connection."""

    github_source_pat: Optional[str] = Field(
        default=None, description='Origin GitHub personal access token'
    )
    github_target_pat: Optional[str] = Field(
        default=None, description='Target GitHub personal access token'
    )
    ado_pat: Optional[str] = Field(
        default=None, description='Azure DevOps personal access token'
    )

    def __repr__(self) -> str:
        present = [
            name
            for name in ('github_source_pat', 'github_target_pat', 'ado_pat')
            if getattr(self, name)
        ]
        return f'SessionCredentials(present={present})'

    __str__ = __repr__

    def for_kind(self, kind: CredentialKind) -> Optional[str]:
        if kind is CredentialKind.GITHUB_SOURCE:
            return self.github_source_pat
        if kind is CredentialKind.GITHUB_TARGET:
            return self.github_target_pat
        return self.ado_pat


class PrerequisiteReport(BaseModel):
    """Which secrets are available to a caller."""

    github_source: bool = Field(..., description='Origin GitHub token available')
    github_target: bool = Field(..., description='Target GitHub token available')
    ado: bool = Field(..., description='Azure DevOps token available')
    session_based: bool = Field(
        default=False, description='Credentials came from a live session'
    )
    details: List[str] = Field(default_factory=list, description='Missing items')

    @property
    def ready(self) -> bool:
        return self.github_source and self.github_target
