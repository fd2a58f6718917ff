"""Exception types raised by hulud-guard."""


class HuludGuardError(Exception):
    """Base class for fatal errors that abort a run."""


class CatalogError(HuludGuardError):
    """The IoC catalog is missing or cannot be parsed."""


class ReportError(HuludGuardError):
    """A detection report cannot be parsed back into a scan result."""
