class AppError(Exception):
    """Base app error."""

    kind = "AppError"


class ValidationError(AppError):
    kind = "Validation"


class NotFoundError(AppError):
    kind = "NotFound"


class SupplierNotFoundError(NotFoundError):
    kind = "SupplierNotFound"


class MissingAccountMappingError(NotFoundError):
    """A journal line points at an account code the chart does not have."""

    kind = "MissingAccountMapping"


class InsufficientStockError(AppError):
    kind = "InsufficientStock"


class UnbalancedEntryError(AppError):
    kind = "UnbalancedEntry"


class AlreadyVoidedError(AppError):
    kind = "AlreadyVoided"


class InvalidPaymentError(AppError):
    kind = "InvalidPayment"


class CreditLimitExceededError(AppError):
    kind = "CreditLimitExceeded"


class AuthorizationError(AppError):
    kind = "Authorization"


class PersistenceError(AppError):
    kind = "PersistenceFailure"


class LicenseError(AppError):
    kind = "License"


class NoLicenseFileError(LicenseError):
    kind = "NoLicenseFile"


class MachineMismatchError(LicenseError):
    kind = "MachineMismatch"


class InvalidSignatureError(LicenseError):
    kind = "InvalidSignature"


class LicenseExpiredError(LicenseError):
    kind = "Expired"
