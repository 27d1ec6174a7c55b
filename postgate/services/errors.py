"""
Service layer exceptions.
"""

DEFAULT_TITLE = "API Error Occurred"


class ServiceError(Exception):
    """Uniform error raised by the upstream client and the service layer."""

    def __init__(
        self,
        detail: str,
        title: str = DEFAULT_TITLE,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ):
        self.detail = detail
        self.title = title
        self.status_code = status_code
        self.cause = cause
        super().__init__(detail)
        if cause is not None:
            self.__cause__ = cause


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.service_id = service_id
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            title="Service Unavailable",
            status_code=503,
        )


class RequestTimeoutError(ServiceError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.service_id = service_id
        self.timeout = timeout
        super().__init__(
            f"Request to '{service_id}' timed out after {timeout}s",
            title="Gateway Timeout",
            status_code=504,
        )
