"""OtpChallenge aggregate — the latest one-time code issued for an order."""

import hmac
from datetime import datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String

from dispatch.domain import dispatch
from dispatch.proof.events import OtpIssued
from dispatch.proof.proof import is_valid_otp
from dispatch.utils.clock import utcnow


@dispatch.aggregate
class OtpChallenge:
    order_id = Identifier(identifier=True)
    agent_id = Identifier(required=True)
    code = String(required=True, max_length=6, sanitize=False)
    issued_at = DateTime(required=True)

    @classmethod
    def issue(cls, order_id: str, agent_id: str, code: str, at: datetime | None = None):
        _assert_code_format(code)
        now = at or utcnow()
        challenge = cls(order_id=order_id, agent_id=agent_id, code=code, issued_at=now)
        challenge.raise_(OtpIssued(order_id=order_id, agent_id=agent_id, issued_at=now))
        return challenge

    def reissue(self, code: str, at: datetime | None = None) -> None:
        """Replace the code; only the most recent one verifies."""
        _assert_code_format(code)
        now = at or utcnow()
        self.code = code
        self.issued_at = now
        self.raise_(OtpIssued(order_id=self.order_id, agent_id=self.agent_id, issued_at=now))

    def matches(self, submitted: str) -> bool:
        if not is_valid_otp(submitted):
            return False
        return hmac.compare_digest(self.code.encode(), submitted.encode())


def _assert_code_format(code) -> None:
    if not is_valid_otp(code):
        raise ValidationError({"code": ["OTP must be exactly 6 digits"]})
