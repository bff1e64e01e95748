"""
The outcomes of the authorization: either allowed, or denied with a reason.

A denial is a normal and expected outcome, not a failure. The failures
(e.g. when the permissions cannot be checked at all) are exceptions instead.
"""
import dataclasses
import enum
from typing import Optional


class DenialReason(str, enum.Enum):
    METADATA_VIOLATION = 'metadata-violation'
    SPEC_VIOLATION = 'spec-violation'

    def __str__(self) -> str:
        return str(self.value)


MESSAGES = {
    DenialReason.METADATA_VIOLATION:
        "User does not have permission to modify VirtualMachine metadata.",
    DenialReason.SPEC_VIOLATION:
        "User does not have permission to modify one or more VirtualMachine spec fields.",
}


@dataclasses.dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason: Optional[DenialReason] = None
    message: str = ''

    @classmethod
    def allow(cls, message: str = '') -> "Verdict":
        return cls(allowed=True, message=message)

    @classmethod
    def deny(cls, reason: DenialReason) -> "Verdict":
        return cls(allowed=False, reason=reason, message=MESSAGES[reason])
