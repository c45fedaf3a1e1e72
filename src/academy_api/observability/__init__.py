"""
academy_api.observability

Logging for the academy API.

Responsibilities:
- structlog configuration with credential masking.
- Per-request context (request id, tenant) and the access log event.
"""

# Package marker.
