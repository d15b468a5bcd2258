import random
import string
from typing import Iterable, Optional

from quizlive.models import GameSession, OPEN_SESSION_STATUSES
from .errors import ExhaustedError

PIN_LENGTH = 6
DEFAULT_ATTEMPTS = 50

_rng = random.SystemRandom()


def is_valid_pin(value) -> bool:
    return (
        isinstance(value, str)
        and len(value) == PIN_LENGTH
        and all(ch in string.digits for ch in value)
    )


def generate_pin() -> str:
    """Uniform draw over 000000-999999."""
    return ''.join(_rng.choices(string.digits, k=PIN_LENGTH))


def pin_in_use(pin: str) -> bool:
    return GameSession.query.filter(
        GameSession.pin == pin,
        GameSession.status.in_(OPEN_SESSION_STATUSES),
    ).first() is not None


def allocate(max_attempts: int = DEFAULT_ATTEMPTS) -> str:
    """Return a PIN not held by any waiting or active session.

    Finished sessions release their PIN implicitly, so only open sessions
    are checked. Raises ExhaustedError once ``max_attempts`` draws collide.
    """
    for _ in range(max(1, max_attempts)):
        pin = generate_pin()
        if not pin_in_use(pin):
            return pin
    raise ExhaustedError(f'No free PIN after {max_attempts} attempts')


def find_open_session(pin: str, statuses: Iterable[str] = OPEN_SESSION_STATUSES) -> Optional[GameSession]:
    return GameSession.query.filter(
        GameSession.pin == pin,
        GameSession.status.in_(tuple(statuses)),
    ).first()
