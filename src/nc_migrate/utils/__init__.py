"""Utility modules for the N-central migration tool."""

from .logging import setup_logging

__all__ = ['setup_logging']
