"""Payment state machine."""

from ..core.exceptions import InvalidTransitionError
from ..models.booking import PaymentStatus

# pending -> completed covers a completion confirmed without a proof upload
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
    }),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def assert_payment_transition(payment_id: str, current: str, target: str) -> None:
    current_status = PaymentStatus(current)
    target_status = PaymentStatus(target)
    if target_status not in PAYMENT_TRANSITIONS[current_status]:
        raise InvalidTransitionError(
            entity="payment",
            entity_id=payment_id,
            current_status=current_status.value,
            target_status=target_status.value,
        )
