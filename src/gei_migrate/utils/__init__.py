"""Utility functions for the GEI migration control plane."""

from .logging import mask_secret, setup_logging

__all__ = ['mask_secret', 'setup_logging']
