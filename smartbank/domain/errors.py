"""
Error taxonomy shared by the store, the services and the API layer.

Every error carries the HTTP status the API answers with, so the
presentation layer maps them through a single exception handler.
"""


class SmartBankError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SmartBankError, ValueError):
    """A required field is missing or malformed."""


class WeakPasswordError(ValidationError):
    pass


class DuplicateNameError(SmartBankError):
    status_code = 409


class DuplicateEmailError(DuplicateNameError):
    pass


class NotFoundError(SmartBankError):
    status_code = 404


class InsufficientFundsError(SmartBankError):
    status_code = 400


class InvalidCredentialsError(SmartBankError):
    status_code = 401


class AccountLockedError(SmartBankError):
    status_code = 423


class InvalidSessionError(SmartBankError):
    status_code = 401
