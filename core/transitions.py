"""
State Transitions
==================

Defines valid document-generation state transitions and provides validation.
"""

from enum import Enum
from typing import List, Tuple, Set
import logging

logger = logging.getLogger(__name__)


class StateTransition(Enum):
    """
    Valid state transitions in the generation state machine.

    Each transition is a tuple of (from_state, to_state).
    """
    # Preflight
    PREFLIGHT_TO_GENERATE = ("PreflightState", "GenerateDocumentState")

    # One model call per document
    GENERATE_TO_VALIDATE = ("GenerateDocumentState", "ValidateDocumentState")

    # Validation outcomes
    VALIDATE_TO_ACCEPT = ("ValidateDocumentState", "AcceptDocumentState")
    VALIDATE_TO_RETRY = ("ValidateDocumentState", "RetryDocumentState")

    # Exactly one retry, then validate again
    RETRY_TO_VALIDATE = ("RetryDocumentState", "ValidateDocumentState")

    # Next document, or the synthetic tail
    ACCEPT_TO_GENERATE = ("AcceptDocumentState", "GenerateDocumentState")
    ACCEPT_TO_SYNTHETIC = ("AcceptDocumentState", "SyntheticDocumentsState")

    SYNTHETIC_TO_PERSIST = ("SyntheticDocumentsState", "PersistState")

    # PersistState is terminal

    @property
    def from_state(self) -> str:
        """Get source state."""
        return self.value[0]

    @property
    def to_state(self) -> str:
        """Get destination state."""
        return self.value[1]


class TransitionValidator:
    """
    Validates state transitions against allowed transitions.

    Example:
        >>> TransitionValidator.validate("ValidateDocumentState", "RetryDocumentState")  # True
        >>> TransitionValidator.validate("RetryDocumentState", "RetryDocumentState")  # False
    """

    VALID_TRANSITIONS: Set[Tuple[str, str]] = {t.value for t in StateTransition}

    @classmethod
    def validate(cls, from_state: str, to_state: str) -> bool:
        """
        Check if transition is valid.

        Args:
            from_state: Source state name
            to_state: Destination state name

        Returns:
            True if transition is allowed, False otherwise
        """
        is_valid = (from_state, to_state) in cls.VALID_TRANSITIONS

        if not is_valid:
            logger.warning(
                f"Invalid transition attempted: {from_state} -> {to_state}"
            )

        return is_valid

    @classmethod
    def get_allowed_transitions(cls, from_state: str) -> List[str]:
        """Destination states reachable from ``from_state``."""
        return sorted(
            to_state
            for (frm, to_state) in cls.VALID_TRANSITIONS
            if frm == from_state
        )

    @classmethod
    def is_terminal_state(cls, state_name: str) -> bool:
        return len(cls.get_allowed_transitions(state_name)) == 0

    @classmethod
    def validate_or_raise(cls, from_state: str, to_state: str):
        """
        Validate transition and raise exception if invalid.

        Raises:
            ValueError: If transition is not allowed
        """
        if not cls.validate(from_state, to_state):
            allowed = cls.get_allowed_transitions(from_state)
            raise ValueError(
                f"Invalid transition: {from_state} -> {to_state}. "
                f"Allowed transitions from {from_state}: {allowed}"
            )
