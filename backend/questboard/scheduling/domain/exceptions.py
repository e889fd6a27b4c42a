"""Typed failures raised by the scheduling core."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class SchedulingError(Exception):
	"""Base class for campaign and session errors.

	``detail`` is a stable machine-readable code; ``kind`` names the failure
	family callers branch on.
	"""

	status_code: int = status.HTTP_400_BAD_REQUEST
	kind: str = "error"
	detail: str = "scheduling_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(SchedulingError):
	"""Referenced campaign, session, member or request does not exist."""

	status_code = status.HTTP_404_NOT_FOUND
	kind = "not_found"
	detail = "not_found"


class AccessDeniedError(SchedulingError):
	"""Caller lacks the role required for the operation."""

	status_code = status.HTTP_403_FORBIDDEN
	kind = "access_denied"
	detail = "access_denied"


class AuthenticationRequiredError(SchedulingError):
	"""Operation needs a caller identity and none was presented."""

	status_code = status.HTTP_401_UNAUTHORIZED
	kind = "authentication_required"
	detail = "authentication_required"


class InvalidStateError(SchedulingError):
	"""Operation is illegal given the current status of the entity."""

	status_code = status.HTTP_409_CONFLICT
	kind = "invalid_state"
	detail = "invalid_state"


class CapacityExceededError(SchedulingError):
	status_code = status.HTTP_409_CONFLICT
	kind = "capacity_exceeded"
	detail = "session_full"


class DuplicateEntityError(SchedulingError):
	"""Already a member, already joined or already requested."""

	status_code = status.HTTP_409_CONFLICT
	kind = "duplicate_entity"
	detail = "duplicate"


class ValidationFailedError(SchedulingError):
	"""Input rejected by rules FastAPI schema validation cannot express."""

	status_code = _HTTP_422
	kind = "validation_failed"
	detail = "validation_failed"
