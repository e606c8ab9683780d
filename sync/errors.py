from __future__ import annotations


class SyncError(Exception):
    code = "SYNC_ERROR"

    def __init__(self, msg: str = "") -> None:
        super().__init__(f"[{self.code}] {msg}" if msg else self.code)
        self.msg = msg


class RoomNotFound(SyncError):
    code = "NOT_FOUND"


class RoomFull(SyncError):
    code = "ROOM_FULL"


class RoomExists(SyncError):
    code = "ROOM_EXISTS"


class Conflict(SyncError):
    code = "CONFLICT"


class StaleWrite(SyncError):
    code = "STALE_WRITE"


class TransportError(SyncError):
    code = "TRANSPORT"


ERRORS_BY_CODE = {
    cls.code: cls for cls in (RoomNotFound, RoomFull, RoomExists, Conflict, StaleWrite, TransportError)
}


def error_from_code(code: str, msg: str = "") -> SyncError:
    return ERRORS_BY_CODE.get(code, TransportError)(msg)
