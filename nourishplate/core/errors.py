"""Error taxonomy shared by the dispatcher, generators and invite workflow.

Boundary functions catch these and turn them into structured results;
none of them is meant to reach an HTTP client as a traceback.
"""

from __future__ import annotations


class ValidationError(Exception):
    """Missing or malformed required fields. Nothing was sent anywhere."""

    status_code = 400


class UpstreamError(Exception):
    """A third-party API answered with a non-2xx status or an unusable reply."""

    status_code = 400

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class UnexpectedError(Exception):
    """Anything else that went wrong while handling a request."""

    status_code = 500


class InvalidToken(Exception):
    """An invitation token could not be decoded into a family id and email."""

    status_code = 400


class AuthRequired(Exception):
    """The action needs a signed-in user."""

    status_code = 401


class InvitationNotFound(Exception):
    """The family or the pending membership an invitation points at is gone."""

    status_code = 404
