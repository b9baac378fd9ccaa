"""Error taxonomy shared by the stores, the services and the HTTP layer."""

from fastapi import status


class PharmacyError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PharmacyError):
    """Bad or missing input."""


class InsufficientStockError(ValidationError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, product_id: str, available: int | None, requested: int):
        if available is None:
            message = f"Insufficient stock for product {product_id}: {requested} requested"
        else:
            message = f"Insufficient stock for product {product_id}: {available} available, {requested} requested"
        super().__init__(message)
        self.product_id = product_id
        self.available = available
        self.requested = requested


class AuthError(PharmacyError):
    """Missing or invalid token, or bad credentials.

    ``reason`` is one of ``missing``, ``invalid``, ``not_found`` or
    ``invalid_credentials``.
    """

    status_code = status.HTTP_401_UNAUTHORIZED

    _MESSAGES = {
        "missing": "Authentication token missing",
        "invalid": "Could not validate credentials",
        "not_found": "Account not found",
        "invalid_credentials": "Incorrect email or password",
    }

    def __init__(self, reason: str):
        super().__init__(self._MESSAGES.get(reason, "Authentication failed"))
        self.reason = reason


class NotFoundError(PharmacyError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ExternalServiceError(PharmacyError):
    """A notification transport failed. Logged, never shown to clients."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
