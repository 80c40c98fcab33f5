"""
Custom exceptions for the campaign pool engine.
Every exception carries an ErrorKind so callers can branch on the
category without matching message strings.
"""
from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure categories."""
    NOT_FOUND = "not_found"
    INSUFFICIENT_DATA = "insufficient_data"
    EXTERNAL_FETCH_FAILURE = "external_fetch_failure"
    TRANSACTION_TIMEOUT = "transaction_timeout"
    CONFLICT = "conflict"


class CampaignPoolException(Exception):
    """Base exception for the campaign pool engine"""
    kind: ErrorKind = ErrorKind.CONFLICT

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(CampaignPoolException):
    """Resource not found"""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str = "Resource", resource_id: str = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message)


class ExternalFetchError(CampaignPoolException):
    """Metrics provider call failed"""
    kind = ErrorKind.EXTERNAL_FETCH_FAILURE

    def __init__(self, service: str = "Metrics provider", message: str = None):
        msg = f"{service} call failed"
        if message:
            msg = f"{msg}: {message}"
        super().__init__(msg)


class TransactionTimeoutError(CampaignPoolException):
    """Distribution transaction exceeded its time budget and was rolled back"""
    kind = ErrorKind.TRANSACTION_TIMEOUT

    def __init__(self, campaign_id: str, timeout_seconds: float):
        super().__init__(
            f"Distribution for campaign '{campaign_id}' exceeded {timeout_seconds:g}s and was rolled back"
        )


class TransactionConflictError(CampaignPoolException):
    """Database rejected the transaction (lock timeout, serialization failure)"""
    kind = ErrorKind.CONFLICT

    def __init__(self, campaign_id: str, message: str = None):
        msg = f"Distribution for campaign '{campaign_id}' was rolled back"
        if message:
            msg = f"{msg}: {message}"
        super().__init__(msg)


class AlreadyDistributedError(CampaignPoolException):
    """Campaign has already been paid out or refunded"""
    kind = ErrorKind.CONFLICT

    def __init__(self, campaign_id: str):
        super().__init__(f"Payouts have already been processed for campaign '{campaign_id}'")


class InvalidCampaignStateError(CampaignPoolException):
    """Campaign is not in a state that allows the operation"""
    kind = ErrorKind.CONFLICT

    def __init__(self, campaign_id: str, status: str, operation: str = "distribute"):
        super().__init__(f"Cannot {operation} campaign '{campaign_id}' in '{status}' status")
