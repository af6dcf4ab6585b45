class EmptyAudioError(ValueError):
    """Raised by start() when the request carries no audio."""

    def __init__(self, message: str = "Audio is required") -> None:
        super().__init__(message)


class SessionNotFoundError(LookupError):
    """Raised by poll() for ids that were never issued or were already reaped."""

    def __init__(self, session_id: str | None) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")
