"""
Engine API Exceptions
"""

from typing import Optional


class EngineException(Exception):
    """Base engine client exception"""
    pass


class TransportError(EngineException):
    """Connection-level failure (connect, reset, broken pipe)"""
    pass


class Timeout(EngineException):
    """Call deadline exceeded"""
    pass


class APIError(EngineException):
    """Engine returned a structured failure"""

    def __init__(self, message: str, status_code: Optional[int] = None, response=None):
        super().__init__(message)
        self.explanation = message
        self.status_code = status_code
        self.response = response

    def __str__(self):
        if self.status_code is None:
            return self.explanation
        return f"{self.status_code}: {self.explanation}"


class ContainerNotFound(APIError):
    """Container not found"""
    pass


class ImageNotFound(APIError):
    """Image not found"""
    pass


class NetworkNotFound(APIError):
    """Network not found"""
    pass


class VolumeNotFound(APIError):
    """Volume not found"""
    pass


class PluginNotFound(APIError):
    """Plugin not found"""
    pass


class SecretNotFound(APIError):
    """Secret not found"""
    pass


class ConfigNotFound(APIError):
    """Config not found"""
    pass


class BuildError(APIError):
    """Image build error"""
    pass


class DecodeError(EngineException):
    """
    Malformed JSON or frame against a known schema

    Attributes:
        context: Raw bytes (or text) that failed to decode
        cause: Underlying exception, if any
    """

    def __init__(self, context, cause: Optional[BaseException] = None):
        self.context = context
        self.cause = cause
        preview = context[:200] if isinstance(context, (bytes, str)) else context
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"Could not decode {preview!r}{reason}")


class TruncatedStream(EngineException):
    """Stream ended in the middle of a frame or body"""
    pass


class UnknownResponse(EngineException):
    """Successful response matching none of the expected shapes"""

    def __init__(self, raw):
        self.raw = raw
        super().__init__(f"Unknown response from engine: {raw!r}")


class SessionClosed(EngineException):
    """Write attempted on a closed attach session"""
    pass
