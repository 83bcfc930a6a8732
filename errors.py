"""
errors.py — Gateway error taxonomy
==================================
Every failure the gateway can surface to the browser. Each carries the HTTP
status it maps to and a message that is safe to show verbatim.
"""

from typing import Optional


class GatewayError(Exception):
    status_code = 500
    message = "Something went wrong!"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class MethodNotAllowed(GatewayError):
    status_code = 405
    message = "Method not allowed"


class BadRequest(GatewayError):
    status_code = 400

    def __init__(self, reason: str):
        super().__init__(reason)


class PaymentRequired(GatewayError):
    status_code = 402
    message = "Payment required"

    def to_body(self) -> dict:
        return {"error": self.message, "requiresPayment": True}


class UpstreamConfigError(GatewayError):
    """Model credentials are missing. Never echoes the variable's value."""
    message = "Analysis service is not configured"


class UpstreamCallFailed(GatewayError):
    message = "Failed to analyze appliance"

    def __init__(self, status: Optional[int] = None, details: Optional[str] = None):
        self.upstream_status = status
        if details is None:
            details = f"Upstream model call failed (status {status})" if status else "Upstream model call failed"
        super().__init__(details=details)


class UpstreamResponseInvalid(GatewayError):
    message = "Failed to analyze appliance"

    def __init__(self, details: str = "Model refused or gave insufficient response"):
        super().__init__(details=details)


class InternalError(GatewayError):
    message = "Failed to analyze appliance"

    def __init__(self, details: str = "Internal error"):
        super().__init__(details=details)
