"""
Error taxonomy for operations that touch external I/O.

Gateways raise the exceptions below internally and convert them to an ``OperationError`` at their boundary, so
callers get a result carrying an error instead of an exception.
"""

from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    NOT_AUTHENTICATED = 'not_authenticated'
    NOT_FOUND = 'not_found'
    VALIDATION_FAILURE = 'validation_failure'
    TRANSIENT_IO_FAILURE = 'transient_io_failure'
    MISSING_SEGMENT = 'missing_segment'
    MISSING_OFFER = 'missing_offer'
    CANNOT_START = 'cannot_start'


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_AUTHENTICATED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION_FAILURE: 422,
    ErrorKind.MISSING_SEGMENT: 422,
    ErrorKind.MISSING_OFFER: 422,
    ErrorKind.TRANSIENT_IO_FAILURE: 503,
    ErrorKind.CANNOT_START: 409,
}


class OperationError(BaseModel):
    kind: ErrorKind
    message: str

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


class NotAuthenticatedError(Exception):
    """No valid session exists for the caller."""


class CampaignNotFoundError(LookupError):
    def __init__(self, campaign_id: str) -> None:
        super().__init__(f'Campaign not found: {campaign_id}')
        self.campaign_id = campaign_id


class InvalidEdgeError(ValueError):
    """An edge would reference a node that does not exist, or duplicates an existing connection."""


class UnknownNodeKindError(ValueError):
    pass
