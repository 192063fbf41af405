"""Domain error taxonomy.

Routers translate these into HTTP responses; nothing here knows about HTTP.
Messages are safe to show to a client.
"""

class ClipVaultError(Exception):
    message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message

class NotFoundError(ClipVaultError):
    # absent, inactive and never-existed all look the same
    message = "Audio clip not found"

class InvalidCredentialError(ClipVaultError):
    message = "Incorrect password"

class ContentMissingError(ClipVaultError):
    """The clip record exists but its bytes cannot be found."""
    message = "Audio file not found"

class StorageWriteError(ClipVaultError):
    message = "Failed to store audio file"

class StorageReadError(ClipVaultError):
    message = "Stream error"

class InvalidRangeError(ClipVaultError):
    message = "Invalid range header"

class RangeNotSatisfiableError(ClipVaultError):
    message = "Range Not Satisfiable"

    def __init__(self, length: int, message: str | None = None):
        super().__init__(message)
        self.length = length

class InvalidStreamTokenError(ClipVaultError):
    message = "Invalid stream token"

class UnsupportedMediaTypeError(ClipVaultError):
    message = "Only audio files are allowed"

class PayloadTooLargeError(ClipVaultError):
    message = "File too large"

class WeakPasswordError(ClipVaultError):
    message = "Password contains weak patterns and is not secure"
