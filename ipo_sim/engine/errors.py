class IPOSimError(Exception):
    """Base class for simulation errors."""


class InvalidApplicationError(IPOSimError, ValueError):
    """Lot count or IPO record unusable for an application."""


class IPONotOpenError(IPOSimError):
    """The symbol is not in the open pool today."""


class ApplicationNotFoundError(IPOSimError):
    pass


class WithdrawalNotAllowedError(IPOSimError):
    pass
