"""ProofOfDelivery verifier — captures and checks delivery-completion evidence."""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from dispatch.errors import OrderServiceRejected, VerificationError
from dispatch.orderservice.port import OrderServicePort
from dispatch.proof.issuance import IssueOtp
from dispatch.proof.otp import OtpChallenge
from dispatch.proof.proof import ProofKind, ProofOfDelivery, is_valid_otp
from dispatch.session import AgentSession
from dispatch.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class ProofVerifier:
    """Produces ``ProofOfDelivery`` values the state machine will accept.

    OTP proofs are only handed out after the submitted code matches the most
    recent code generated for that same order and the order service confirms
    it. A failed verification changes nothing, so the agent can simply be
    asked again.
    """

    def __init__(self, session: AgentSession, order_service: OrderServicePort, clock=utcnow):
        self._session = session
        self._order_service = order_service
        self._clock = clock

    def capture_otp(self, order_id: str) -> str:
        """Have the order service generate a code for the customer and remember it."""
        code = self._order_service.generate_otp(order_id)
        if not is_valid_otp(code):
            raise OrderServiceRejected(f"Order service returned a malformed OTP for order {order_id}")

        current_domain.process(
            IssueOtp(order_id=order_id, agent_id=self._session.agent_id, code=code, issued_at=self._clock()),
            asynchronous=False,
        )
        logger.info("OTP issued", order_id=order_id, agent_id=self._session.agent_id)
        return code

    def verify_otp(self, order_id: str, submitted_code: str) -> ProofOfDelivery:
        if not is_valid_otp(submitted_code):
            raise VerificationError({"otp": ["Please enter a 6-digit OTP"]})

        challenge = self._latest_challenge(order_id)
        if challenge is None:
            raise VerificationError({"otp": [f"No OTP has been generated for order {order_id}"]})
        if not challenge.matches(submitted_code):
            logger.info("OTP mismatch", order_id=order_id, agent_id=self._session.agent_id)
            raise VerificationError({"otp": ["Invalid OTP"]})

        try:
            self._order_service.verify_otp(order_id, submitted_code)
        except OrderServiceRejected as exc:
            raise VerificationError({"otp": [str(exc)]}) from exc

        return self._proof(ProofKind.OTP, submitted_code, order_id)

    def capture_photo(self, order_id: str, media_ref: str) -> ProofOfDelivery:
        return self._proof(ProofKind.PHOTO, self._media_ref(media_ref), order_id)

    def capture_signature(self, order_id: str, media_ref: str) -> ProofOfDelivery:
        return self._proof(ProofKind.SIGNATURE, self._media_ref(media_ref), order_id)

    def _proof(self, kind: ProofKind, value: str, order_id: str) -> ProofOfDelivery:
        return ProofOfDelivery(kind=kind.value, value=value, order_id=order_id, captured_at=self._clock())

    @staticmethod
    def _media_ref(media_ref) -> str:
        if not media_ref or not str(media_ref).strip():
            raise VerificationError({"media_ref": ["A media reference is required"]})
        return str(media_ref).strip()

    @staticmethod
    def _latest_challenge(order_id: str) -> OtpChallenge | None:
        try:
            return current_domain.repository_for(OtpChallenge).get(order_id)
        except ObjectNotFoundError:
            return None
