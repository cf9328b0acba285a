from .http_client import ApiClient, ApiResponse, HttpxApiClient

__all__ = ["ApiClient", "ApiResponse", "HttpxApiClient"]
