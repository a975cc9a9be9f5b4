"""GEI Migration Control Plane

Session-aware orchestration of repository migrations into GitHub through the
GitHub Enterprise Importer API, with durable tracking of in-flight and
completed migrations.
"""

__version__ = '0.1.0'
__author__ = 'GEI Migration Team'
__email__ = 'team@example.com'

__all__ = ['__version__']
