"""Exception hierarchy for acquisition, storage, and delivery failures."""


class BlackoutError(Exception):
    """Base class for all tracker errors."""


class UpstreamUnavailable(BlackoutError):
    """The portal could not be reached or answered with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TokenNotFound(BlackoutError):
    """The blackout page did not contain the expected anti-bot token."""


class DataMissing(BlackoutError):
    """A resolved ID returned no schedule row."""

    def __init__(self, group_code: str, resolved_id: int):
        super().__init__(f"No data for group {group_code} at ID {resolved_id}")
        self.group_code = group_code
        self.resolved_id = resolved_id


class GroupMismatch(BlackoutError):
    """A resolved ID now serves a different group than it was resolved for."""

    def __init__(self, group_code: str, resolved_id: int, reported: str):
        super().__init__(
            f"ID {resolved_id} resolved for group {group_code} now reports {reported}"
        )
        self.group_code = group_code
        self.resolved_id = resolved_id
        self.reported = reported


class ResolutionFailed(BlackoutError):
    """The ID resolver ran out of probes before every group was found."""

    def __init__(self, missing: set[str], attempts: int):
        super().__init__(
            f"Unresolved groups after {attempts} probes: {', '.join(sorted(missing))}"
        )
        self.missing = missing
        self.attempts = attempts


class AcquisitionFailed(BlackoutError):
    """No internally consistent snapshot could be acquired within the cycle limit."""


class StoreUnavailable(BlackoutError):
    """The persistence layer failed."""


class CacheCorrupted(StoreUnavailable):
    """A persisted cache artifact could not be decoded."""


class DeliveryFailed(BlackoutError):
    """The notification transport rejected or failed to send a message."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
