"""Error taxonomy shared by the core operations and the HTTP layer."""


class BeaconHubError(Exception):
    """Base class for errors raised by beaconhub operations."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BeaconHubError):
    """A required field is missing or empty."""

    status_code = 400


class NotFoundError(BeaconHubError):
    """The referenced user, log entry or beacon does not exist."""

    status_code = 404


class ConflictError(BeaconHubError):
    """A uniqueness constraint was violated and could not be reconciled."""

    status_code = 409


class StoreError(BeaconHubError):
    """The underlying database failed. Details are logged, not exposed."""

    status_code = 500


def require(value: str | None, field: str) -> str:
    """Return ``value`` stripped, or raise ValidationError when it is empty."""
    cleaned = value.strip() if value else ""
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned
