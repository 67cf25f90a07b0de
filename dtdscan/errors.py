"""Exception hierarchy for dtdscan."""


class DtdScanError(Exception):
    """Base class for all dtdscan errors."""


class ConfigError(DtdScanError):
    """Raised when a configuration file or registry table is invalid."""


class ParseError(DtdScanError):
    """Raised when a front end cannot produce a syntax tree for a unit."""

    def __init__(self, message: str, path: str = "<unknown>", line: int = 0):
        self.path = path
        self.line = line
        location = f"{path}:{line}" if line else path
        super().__init__(f"{location}: {message}")


class MalformedConstructionExpression(DtdScanError):
    """
    Raised by a grammar adapter when a construction node cannot be mapped
    to a ConstructionSite. The walker skips the node and keeps going.
    """
