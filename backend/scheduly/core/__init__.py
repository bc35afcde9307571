from .config import settings
from .errors import (
    APIError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "settings",
    "APIError",
    "BadRequestError",
    "ConflictError",
    "NotFoundError",
    "ValidationError",
]
