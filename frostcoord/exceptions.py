"""
Error taxonomy for the coordinator.

Every error terminates only the call that raised it and leaves the session
record exactly as it was before the call. `category` lets off-chain
coordination software decide whether to retry data collection, resubmit or
give up.
"""


class CoordinatorError(Exception):
    """Base class for all rejected coordinator calls."""

    category = "error"

    def __init__(self, message: str, session_id=None):
        super().__init__(message)
        self.session_id = session_id


class ValidationError(CoordinatorError):
    """Bad threshold, participant count, key length or malformed argument."""

    category = "validation"


class DuplicateSessionError(ValidationError):
    pass


class DuplicateSubmissionError(ValidationError):
    """A write-once per participant field was written twice."""

    pass


class SessionNotFoundError(ValidationError):
    pass


class AuthorizationError(CoordinatorError):
    """Caller is not the creator or not a participant."""

    category = "authorization"


class SequencingError(CoordinatorError):
    """Operation called outside its phase."""

    category = "sequencing"


class SessionClosedError(SequencingError):
    """The session is FINALIZED or ABORTED and read-only."""

    pass


class SessionExpiredError(SequencingError):
    """Deadline elapsed. The session can only be cancelled and recreated under a new id."""

    category = "timeout"


class CryptographicError(CoordinatorError):
    """Invalid signature, off-curve point or inconsistent commitment."""

    category = "cryptographic"


class InvalidPointError(CryptographicError):
    pass


class InvalidShareError(CryptographicError):
    def __init__(self, message: str, sender=None, session_id=None):
        super().__init__(message, session_id)
        self.sender = sender


class InvalidCommitmentError(CryptographicError):
    pass


class InvalidSignatureError(CryptographicError):
    pass
