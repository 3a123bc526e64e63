from .client import get_http_client, request_with_retry
from .errors import GeoAskHTTPError, GeoAskHTTPNetworkError, GeoAskHTTPStatusError

__all__ = [
    "get_http_client",
    "request_with_retry",
    "GeoAskHTTPError",
    "GeoAskHTTPNetworkError",
    "GeoAskHTTPStatusError",
]
