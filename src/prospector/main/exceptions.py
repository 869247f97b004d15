from enum import Enum


class ErrorCodes(int, Enum):
    NOT_FOUND = 9000
    BAD_REQUEST = 9001
    VALIDATION_ERROR = 9002
    INSUFFICIENT_CREDITS = 9003
    SERVICE_UNAVAILABLE = 9004
    UPSTREAM_ERROR = 9005


class ProspectorException(Exception):
    pass


class NotReadyException(ProspectorException):
    pass


class BrokerConnectionException(ProspectorException):
    pass


class JobMessageException(ProspectorException):
    pass


class NotFoundException(ProspectorException):
    pass


class BadRequestException(ProspectorException):
    pass


class ValidationException(ProspectorException):
    pass


class InsufficientCreditsException(ProspectorException):
    pass


class LeadDiscoveryException(ProspectorException):
    pass


# Map of exceptions to (status code, fixed message or None to use str(exc), error code)
EXCEPTION_MAP = {
    NotFoundException: (404, None, ErrorCodes.NOT_FOUND),
    BadRequestException: (400, None, ErrorCodes.BAD_REQUEST),
    ValidationException: (422, None, ErrorCodes.VALIDATION_ERROR),
    InsufficientCreditsException: (402, None, ErrorCodes.INSUFFICIENT_CREDITS),
    NotReadyException: (503, "Job queue is not available", ErrorCodes.SERVICE_UNAVAILABLE),
    BrokerConnectionException: (
        503,
        "Job queue is not available",
        ErrorCodes.SERVICE_UNAVAILABLE,
    ),
    LeadDiscoveryException: (502, None, ErrorCodes.UPSTREAM_ERROR),
}
