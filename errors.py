from typing import Optional


class StoreError(Exception):
    """Base for failures that are reported to the caller verbatim."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(StoreError):
    status_code = 400


class NotFoundError(StoreError):
    status_code = 404


class ConflictError(StoreError):
    # business-rule failures: stock, discount, duplicates
    status_code = 400


class InternalError(StoreError):
    status_code = 500
