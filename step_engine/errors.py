"""Exception types raised by the step engine."""


class StepEngineError(Exception):
    """Base class for step engine failures."""


class DecodeError(StepEngineError):
    """The chunk's sample payload is missing or cannot be decoded."""


class MissingSessionError(StepEngineError):
    """No active session exists for the device and none was requested."""

    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(
            f"No active session for device {device_id}. "
            "Send the chunk with new_session=true to start a new session."
        )


class UnknownSessionError(StepEngineError):
    """The device/session pair does not exist."""

    def __init__(self, device_id: str, session_id: str):
        self.device_id = device_id
        self.session_id = session_id
        super().__init__(f"Invalid device_id/session_id combination: {device_id}/{session_id}")


class StorageError(StepEngineError):
    """The persistence collaborator failed to read or write."""
