"""
Error taxonomy shared by the registry, the HTTP layer and the client.

Server-side errors carry the HTTP status they map to; the exception handler in
``venue_tracker.main`` turns them into ``{"error": message}`` responses.

- ValidationError (400): missing or malformed input, never retried
- NotFoundError (404): unknown group or user
- InternalError (500): unexpected server fault
- TransientNetworkError: client-side, any failed poll/push that is not a 404
- SessionExpiredError: client-side, resurrection failed and the session ends
"""


class VenueTrackerError(Exception):
    """Base class for all venue tracker errors."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(VenueTrackerError):
    status_code = 400
    default_message = "Missing fields"


class NotFoundError(VenueTrackerError):
    status_code = 404
    default_message = "Not found"


class GroupNotFoundError(NotFoundError):
    default_message = "Group not found"

    def __init__(self, group_id: str | None = None, message: str | None = None):
        self.group_id = group_id
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    default_message = "User not found"

    def __init__(self, user_id: str | None = None, message: str | None = None):
        self.user_id = user_id
        super().__init__(message)


class InternalError(VenueTrackerError):
    pass


class TransientNetworkError(VenueTrackerError):
    """A registry call failed in a way the next tick may not repeat."""

    status_code = 503
    default_message = "Registry unreachable"


class SessionExpiredError(VenueTrackerError):
    """The group is gone and could not be recreated."""

    status_code = 410
    default_message = "Session expired"
