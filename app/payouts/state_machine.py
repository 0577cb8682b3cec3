# app/payouts/state_machine.py
from app.payouts import model as pm


class InvalidTransition(Exception):
    pass


ALLOWED = {
    pm.PENDING: {pm.PROCESSING, pm.REJECTED, pm.COMPLETED},
    pm.PROCESSING: {pm.COMPLETED, pm.REJECTED},
    pm.COMPLETED: set(),
    pm.REJECTED: set(),
}


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(f"Illegal payout transition: {old} -> {new}")


def sources_for(new: str) -> tuple[str, ...]:
    return tuple(sorted(s for s, targets in ALLOWED.items() if new in targets))


def assert_completed_invariant(new_status: str, transaction_reference: str | None) -> None:
    """
    Invariant: a completed payout MUST carry a transaction reference.
    """
    if new_status == pm.COMPLETED and not (transaction_reference or "").strip():
        raise ValueError("Invariant violation: status=completed requires transaction_reference")
