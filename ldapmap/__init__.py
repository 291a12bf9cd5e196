"""
This is the main module for the ldapmap library, which exposes an LDAP directory
through plain Python dictionaries.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

__version__ = "0.1"

from .client import Directory
from .core import open_debug, close_debug
from .controls import ASCENDING, DESCENDING
from .exceptions import *
from .modifications import ALL_VALUES
from .results import Outcome
