"""Error taxonomy for the live classroom core.

Every failure is scoped to the request or timer callback that raised it.
``notify_sender`` decides whether the WebSocket layer reports the failure back
to the originating connection or only logs it.
"""


class ClassroomError(Exception):
    code = "classroom_error"
    notify_sender = True

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


class AuthRejected(ClassroomError):
    code = "auth_rejected"


class NotAuthorized(ClassroomError):
    code = "not_authorized"

    def __init__(self, detail: str = "", *, notify_sender: bool = True):
        super().__init__(detail)
        self.notify_sender = notify_sender


class AlreadyInOtherRoom(ClassroomError):
    code = "already_in_other_room"


class InvalidMessage(ClassroomError):
    code = "invalid_message"


class DuplicateSubmission(ClassroomError):
    code = "duplicate_submission"
    notify_sender = False


class NotFound(ClassroomError):
    code = "not_found"
    notify_sender = False


class StorageFailure(ClassroomError):
    code = "storage_failure"
    notify_sender = False
