"""
Error taxonomy for the probe service.

Every error carries the HTTP status it maps to. ``ProbeError`` is reported to
the caller with a 200 envelope; the others short-circuit the request.
"""


class ProbeServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(ProbeServiceError):
    status_code = 403


class InvalidRequestError(ProbeServiceError):
    status_code = 400


class OverloadError(ProbeServiceError):
    status_code = 503


class ProbeError(ProbeServiceError):
    status_code = 200
