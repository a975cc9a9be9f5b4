"""Migration orchestration."""

from .lifecycle import MigrationLifecycleController
from .service import MigrationService, OperationResult, build_source_urls
from .sources import MigrationSourceCache, canonical_org_url

__all__ = [
    'MigrationLifecycleController',
    'MigrationService',
    'OperationResult',
    'build_source_urls',
    'MigrationSourceCache',
    'canonical_org_url',
]
