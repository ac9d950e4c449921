"""Error taxonomy for ceremony orchestration."""

from typing import Optional


class CeremonyError(Exception):
    """Base class for errors that end a single ceremony attempt.

    These are expected operational outcomes and are converted into structured
    HTTP responses; they never indicate a server fault.
    """

    status_code = 400
    default_message = "Ceremony failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CeremonyError):
    """A required request field is missing or malformed."""

    default_message = "Invalid request"


class UserNotFound(CeremonyError):
    status_code = 404
    default_message = "User not found"


class UnknownUser(UserNotFound):
    """A registry mutation referenced a user that does not exist."""


class CredentialNotFound(CeremonyError):
    status_code = 404
    default_message = "Credential not found"


class NoPendingChallenge(CeremonyError):
    """No outstanding challenge: expired, already consumed, or never issued."""

    default_message = "Challenge not found"


ChallengeNotFound = NoPendingChallenge


class VerificationFailed(CeremonyError):
    default_message = "Verification failed"


class DuplicateCredential(VerificationFailed):
    """The credential id is already registered, to this user or another."""

    default_message = "Credential already registered"


class CounterRegression(VerificationFailed):
    """The signature counter did not advance; the credential may be cloned."""

    default_message = "Signature counter did not increase"

    def __init__(self, stored: int, reported: int, message: Optional[str] = None):
        self.stored = stored
        self.reported = reported
        super().__init__(
            message
            or f"Signature counter {reported} is not greater than stored counter {stored}"
        )


class StoreUnavailable(Exception):
    """The backing store failed; an infrastructure fault, not a ceremony outcome."""

    status_code = 503
