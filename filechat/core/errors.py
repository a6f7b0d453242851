# filechat/core/errors.py


class FileChatError(Exception):
    """Base class for every error raised by FileChat itself."""


class AuthError(FileChatError):
    pass


class StoreError(FileChatError):
    """A call against the relational store or the bucket failed."""


class FileNotFoundInStoreError(StoreError):
    pass


class FileTooLargeError(FileChatError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"File size exceeds the limit. Regular users may only upload files "
            f"smaller than {limit // 1024}KB."
        )


class WebhookError(FileChatError):
    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class ReconcileError(FileChatError):
    """The history table could not be read at all."""


class SendRejected(FileChatError):
    """send_message was a no-op: empty content, no user, or a send in flight."""


class SessionAccessError(FileChatError):
    """The session belongs to another user."""
