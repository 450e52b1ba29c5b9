"""Error taxonomy shared by routers and the booking finance helpers."""


class MomentumError(Exception):
    """Base error carrying the HTTP status a router should answer with."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class InvalidInput(MomentumError):
    """Malformed amounts, dates or ids supplied by the caller."""

    status_code = 400


class InvalidAmount(InvalidInput):
    """An amount or rate outside its allowed range."""


class NotFound(MomentumError):
    """Row absent, or owned by another photographer."""

    status_code = 404


class UpstreamFailure(MomentumError):
    """Email or payment provider failed; the caller may retry."""

    status_code = 502


class DataInconsistency(MomentumError):
    """Stored data disagrees with itself. Tolerated, never raised to clients."""

    status_code = 500


class Unauthorized(MomentumError):
    """Missing or wrong credentials (bearer token, webhook signature)."""

    status_code = 401
