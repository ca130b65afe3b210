from __future__ import annotations


class PortalError(Exception):
    """An operation failure that should reach the user as a notification."""

    def __init__(self, title: str, description: str | None = None) -> None:
        super().__init__(description or title)
        self.title = title
        self.description = description or ""


class FormValidationError(PortalError):
    def __init__(self, title: str, description: str | None = None, field_errors: dict[str, str] | None = None) -> None:
        super().__init__(title, description)
        self.field_errors = dict(field_errors or {})


class NotFoundError(PortalError):
    pass


class PermissionDenied(PortalError):
    pass


def format_error_for_toast(error: BaseException, fallback: str) -> dict[str, str]:
    """Toast payload for a caught error; unexpected errors only show ``fallback``."""
    if isinstance(error, PortalError):
        return {"title": error.title, "description": error.description or fallback}
    return {"title": "Error", "description": fallback}
