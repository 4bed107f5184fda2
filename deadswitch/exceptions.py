class DeadSwitchError(Exception):
    status_code = 500
    detail = "Internal error"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class MessageNotFoundError(DeadSwitchError):
    status_code = 404
    detail = "Message not found"


class InvalidUserError(DeadSwitchError):
    status_code = 401
    detail = "Invalid or unknown user"


class DuplicateRecipientsError(DeadSwitchError):
    """Another message already uses the same recipient set (and thus the same check-in token)."""

    status_code = 409
    detail = "A message with the same recipients already exists"
