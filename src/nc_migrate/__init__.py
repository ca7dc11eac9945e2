"""N-central Migration Tool

Exports customers, sites, devices, access groups, roles, users and custom
properties from an N-central server, and migrates them to a second server
in dependency order with identifier remapping.
"""

__version__ = '0.1.0'
__author__ = 'N-central Migration Team'
__email__ = 'team@example.com'

from .cli.main import main

__all__ = ['main']
