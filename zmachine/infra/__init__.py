"""Internal machinery: HTTP transport."""

from .http import (
    Auth,
    HttpClient,
    HttpError,
    Response,
)

__all__ = ["Auth", "HttpClient", "HttpError", "Response"]
