"""
Error taxonomy shared by every layer.

Services raise these where the problem is detected; the handlers registered
in main.py turn them into `{"error": message}` responses with `status_code`.
"""


class JazjoError(Exception):
    status_code = 500
    public_message = None  # when set, replaces the message sent to clients

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    @property
    def client_message(self) -> str:
        return self.public_message or self.message


class ValidationError(JazjoError):
    status_code = 400


class AuthenticationError(JazjoError):
    status_code = 401


class AuthorizationError(JazjoError):
    status_code = 403


class NotFoundError(JazjoError):
    status_code = 404


class ConflictError(JazjoError):
    status_code = 409


class PayloadTooLargeError(JazjoError):
    status_code = 413

    def __init__(self, message: str = "Payload too large"):
        super().__init__(message)


class ConfigurationError(JazjoError):
    status_code = 500
    public_message = "Service is not configured."


class UpstreamError(JazjoError):
    status_code = 502
    public_message = "Upstream service error."
