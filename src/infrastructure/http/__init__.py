"""HTTP client infrastructure."""
from infrastructure.http.client import PackServiceClient, make_http_session

__all__ = [
    'PackServiceClient',
    'make_http_session',
]
