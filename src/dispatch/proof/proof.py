"""ProofOfDelivery — the evidence attached to an order when it is delivered."""

import re
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String

from dispatch.domain import dispatch

OTP_PATTERN = re.compile(r"[0-9]{6}")


class ProofKind(Enum):
    OTP = "OTP"
    PHOTO = "Photo"
    SIGNATURE = "Signature"


def is_valid_otp(code) -> bool:
    return isinstance(code, str) and OTP_PATTERN.fullmatch(code) is not None


@dispatch.value_object
class ProofOfDelivery:
    """Tagged proof: a verified 6-digit OTP, or a photo / signature media reference.

    Photo and signature are weaker tiers accepted without remote validation,
    for when getting an OTP to the customer is impractical.
    """

    kind = String(required=True, choices=ProofKind)
    value = String(required=True, max_length=500, sanitize=False)
    order_id = Identifier(required=True)
    captured_at = DateTime(required=True)

    @invariant.post
    def otp_proof_must_be_six_digits(self):
        if self.kind == ProofKind.OTP.value and not is_valid_otp(self.value):
            raise ValidationError({"value": ["OTP proof must be exactly 6 digits"]})
