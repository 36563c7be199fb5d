from __future__ import annotations

from typing import Optional


class AdminDataError(Exception):
    """Base class for every error raised by the admin data layer."""


class RemoteDataError(AdminDataError):
    """The backing store rejected a request or could not be reached."""


class UnknownTableError(RemoteDataError):
    def __init__(self, table: str):
        super().__init__(f"Unknown table: {table}")
        self.table = table


class RecordNotFoundError(AdminDataError):
    def __init__(self, table: str, column: str, value: object):
        super().__init__(f"No row in {table} where {column} = {value!r}")
        self.table = table
        self.column = column
        self.value = value


class ValidationError(AdminDataError):
    """
    Raised before any network call when input is incomplete or invalid.

    ``field`` names the offending field when there is a single one.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class PromotionError(AdminDataError):
    """
    Failure while moving an approved application into its production table.

    ``stage`` is one of ``read``, ``insert`` or ``delete``. A ``delete`` failure
    means the row was already copied, so the production table now holds a
    duplicate of a still-pending application.
    """

    def __init__(self, message: str, stage: str):
        super().__init__(message)
        self.stage = stage

    @property
    def partial(self) -> bool:
        return self.stage == "delete"
