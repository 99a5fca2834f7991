"""Error types raised by desk scheduling operations, each carrying its HTTP status."""

class DeskScheduleError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BadRequestError(DeskScheduleError):
    status_code = 400


class ForbiddenError(DeskScheduleError):
    status_code = 403


class NotFoundError(DeskScheduleError):
    status_code = 404


class ConflictError(DeskScheduleError):
    status_code = 409


class StoreError(DeskScheduleError):
    status_code = 503
