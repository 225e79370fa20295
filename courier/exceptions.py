"""
Domain errors raised by the orchestration core.

Routers translate these into HTTP responses; nothing in the core imports
FastAPI.
"""

from typing import List, Optional


class CourierError(Exception):
    """Base class for every error raised by courier services"""


class OrderValidationError(CourierError):
    """The request is the caller's fault; reported as 400"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or [message]


class DuplicateRequest(OrderValidationError):
    """Idempotency key was already used"""

    def __init__(self, key: str):
        super().__init__("Duplicate request (idempotency token)", [f"Idempotency-Key: already used ({key})"])
        self.key = key


class InsufficientStock(OrderValidationError):
    """A referenced stock item is missing or has too few units"""


class OrderNotFound(CourierError):
    pass


class RouteNotFound(CourierError):
    pass


class PackageNotFound(CourierError):
    pass


class InvalidTransition(CourierError):
    """A package or order was asked to leave a terminal state"""


class IntegrationError(CourierError):
    """CMS, WMS or ROS was unreachable or answered with an error"""

    def __init__(self, system: str, message: str):
        super().__init__(f"{system}: {message}")
        self.system = system


class StoreError(CourierError):
    """The durable document store failed"""
