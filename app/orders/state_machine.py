# app/orders/state_machine.py
from app.orders import model as om


class InvalidTransition(Exception):
    pass


ALLOWED = {
    om.CREATED: {om.PENDING, om.PAID, om.REFUNDED},
    om.PENDING: {om.PAID, om.REFUNDED},
    om.PAID: {om.PENDING, om.DELIVERED, om.FAILED, om.REFUNDED},
    om.DELIVERED: {om.REFUNDED},
    om.FAILED: {om.REFUNDED},
    om.REFUNDED: set(),
}


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(f"Illegal order transition: {old} -> {new}")


def can_transition(old: str, new: str) -> bool:
    return new in ALLOWED.get(old, set())


def sources_for(new: str) -> tuple[str, ...]:
    """Every state from which `new` is reachable; feeds the guarded UPDATE."""
    return tuple(sorted(s for s, targets in ALLOWED.items() if new in targets))
