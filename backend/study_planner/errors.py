"""Domain errors raised by services and translated by the HTTP layer.

Services raise these for expected outcomes; only `main` maps them to
responses, using `status_code` and the client-safe `message`.
"""


class ServiceError(Exception):
    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class Unauthorized(ServiceError):
    status_code = 401
    kind = "unauthorized"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ValidationFailed(ServiceError):
    status_code = 400
    kind = "validation_error"

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message)


class NotFound(ServiceError):
    """Missing record, or a record owned by someone else.

    Both cases share this error and message so callers cannot probe for
    other users' ids.
    """
    status_code = 404
    kind = "not_found"

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class MethodNotSupported(ServiceError):
    status_code = 405
    kind = "method_not_allowed"

    def __init__(self, message: str = "Method not allowed"):
        super().__init__(message)
