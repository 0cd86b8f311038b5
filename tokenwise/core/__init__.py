"""
Core shared primitives: the TokenWise error taxonomy.
"""

from tokenwise.core.exceptions import (
    AllEndpointsFailedError,
    EndpointError,
    RateLimitError,
    StorageError,
    TokenWiseError,
)

__all__ = [
    "AllEndpointsFailedError",
    "EndpointError",
    "RateLimitError",
    "StorageError",
    "TokenWiseError",
]
