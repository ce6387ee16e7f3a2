# multipost/errors.py
"""Failures raised while publishing or refreshing.

Everything under PublishError is scoped to one publish target: the orchestrator
stores ``str(exc)`` on that target and carries on with the others. NotFound is
scoped to the whole operation and propagates to the caller.
"""

class NotFound(Exception):
    pass

class InvalidState(Exception):
    """The post's current status does not allow the requested action."""

class PublishError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class MissingMedia(PublishError):
    pass

class MissingDestination(PublishError):
    pass

class UnsupportedPlatform(PublishError):
    def __init__(self, platform: str):
        super().__init__(f"Platform {platform} is not supported")
        self.platform = platform

class RemoteRejected(PublishError):
    """The platform answered with a non-success response; message is shown to the user as-is."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

class ProcessingTimedOut(PublishError):
    pass

class NetworkFailure(PublishError):
    pass
