"""OTP issuance — command and handler."""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.proof.otp import OtpChallenge


@dispatch.command(part_of="OtpChallenge")
class IssueOtp:
    """Record the code the order service generated for an order."""

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    code = String(required=True, max_length=6, sanitize=False)
    issued_at = DateTime()


@dispatch.command_handler(part_of=OtpChallenge)
class OtpChallengeHandler:
    @handle(IssueOtp)
    def issue_otp(self, command):
        repo = current_domain.repository_for(OtpChallenge)
        try:
            challenge = repo.get(command.order_id)
            challenge.reissue(command.code, at=command.issued_at)
        except ObjectNotFoundError:
            challenge = OtpChallenge.issue(
                order_id=command.order_id,
                agent_id=command.agent_id,
                code=command.code,
                at=command.issued_at,
            )
        repo.add(challenge)
