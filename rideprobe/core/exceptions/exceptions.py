from typing import Any, Optional


class AppError(Exception):
    """Base class for all application-level errors."""
    pass


class DomainError(AppError):
    """Base for probe definition errors."""
    pass

class InvalidProbeRequestError(DomainError):
    def __init__(self, detail: str):
        self.message = f"Invalid probe request: {detail}"
        super().__init__(self.message)



class InfrastructureError(AppError):
    """Base for infrastructure-related errors (DB, API, SMTP)."""
    pass

class DatabaseConnectionError(InfrastructureError):
    def __init__(self, address: str, detail: str = ""):
        self.address = address
        self.message = f"Could not connect to database '{address}': {detail}".rstrip(": ")
        super().__init__(self.message)

class QueryError(InfrastructureError):
    def __init__(self, collection: str, detail: str = ""):
        self.collection = collection
        self.message = f"Query on collection '{collection}' failed: {detail}".rstrip(": ")
        super().__init__(self.message)

class NetworkError(InfrastructureError):
    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.message = f"Could not reach '{url}': {detail}".rstrip(": ")
        super().__init__(self.message)

class ApiError(InfrastructureError):
    """Remote answered with a non-success status."""

    def __init__(self, url: str, status_code: int, body: Optional[Any] = None):
        self.url = url
        self.status_code = status_code
        self.body = body
        self.message = f"Error with external service '{url}': status {status_code}"
        super().__init__(self.message)

class EmailDeliveryError(InfrastructureError):
    def __init__(self, stage: str, detail: str = ""):
        self.stage = stage
        self.message = f"Email {stage} failed: {detail}".rstrip(": ")
        super().__init__(self.message)
