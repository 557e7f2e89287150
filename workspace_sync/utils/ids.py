import secrets
import time


ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
SIZE = 9


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(ALPHABET[remainder])
    return "".join(reversed(digits))


def _random_part(size: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(size))


def generate_id(size: int = SIZE) -> str:
    # Random prefix plus a base36 millisecond suffix keeps ids roughly time-ordered.
    return _random_part(size) + _base36(int(time.time() * 1000))


def block_id() -> str:
    return f"block_{int(time.time() * 1000)}_{_random_part(SIZE)}"
