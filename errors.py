class StorefrontError(Exception):
    pass


class AuthError(StorefrontError):
    pass


class SessionExpiredError(AuthError):
    def __init__(self, message: str = "Session expired. Please log in again."):
        super().__init__(message)


class StorageError(StorefrontError):
    """Raised by client-state storage backends when a read or write fails."""


class PaymentGatewayError(StorefrontError):
    pass


class PaymentVerificationError(StorefrontError):
    """Raised when a payment callback fails signature verification."""


class EmailDeliveryError(StorefrontError):
    pass


class InvalidTransitionError(StorefrontError):
    pass


class CommentLimitError(StorefrontError):
    pass
