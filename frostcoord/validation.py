"""Argument checks shared by the DKG and signing protocols."""

import functools
import logging
from typing import Iterable

from .commitment_ro import commitment_length
from .exceptions import CoordinatorError, ValidationError


def logged(method):
    """Log rejected calls before they propagate to the caller."""
    logger = logging.getLogger(method.__module__)

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except CoordinatorError as exc:
            logger.warning("%s rejected (%s): %s", method.__name__, exc.category, exc)
            raise

    return wrapper


def check_identity(who, what: str = "caller") -> str:
    if not isinstance(who, str) or not who:
        raise ValidationError(f"{what} must be a non-empty identity")
    return who


def check_participants(participants: Iterable[str], threshold: int, minimum: int, maximum: int) -> list:
    participants = list(participants)
    for who in participants:
        check_identity(who, "participant")
    if len(set(participants)) != len(participants):
        raise ValidationError("participant list contains duplicates")
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValidationError("threshold must be an integer")
    if not minimum <= threshold <= len(participants) <= maximum:
        raise ValidationError(
            f"need {minimum} <= threshold <= participants <= {maximum}, "
            f"got threshold={threshold} participants={len(participants)}")
    return participants


def check_hash(value, what: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != commitment_length:
        raise ValidationError(f"{what} must be {commitment_length} bytes")
    return bytes(value)
