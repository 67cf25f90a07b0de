"""
dtdscan

Static analysis for C# and Visual Basic .NET that reports XML document
types constructed with insecure DTD processing (CA3075).
"""

__version__ = "1.0.0"
__author__ = "dtdscan developers"

from dtdscan.core.config import Config
from dtdscan.core.diagnostic import Diagnostic, Location, Severity
from dtdscan.core.engine import ScanEngine, ScanReport

__all__ = [
    "Config",
    "Diagnostic",
    "Location",
    "ScanEngine",
    "ScanReport",
    "Severity",
]
