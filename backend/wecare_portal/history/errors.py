from __future__ import annotations


class PortalError(Exception):
    """Base for failures surfaced to the person using the portal.

    ``message`` is human readable and shown verbatim in the error display.
    """

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        self.status_code = status_code
        super().__init__(self.message)


class FetchFailure(PortalError):
    default_message = "Failed to load data. Please try again."


class NotFound(FetchFailure):
    default_message = "The requested record could not be found."


class ActionFailure(PortalError):
    default_message = "The action could not be completed."
