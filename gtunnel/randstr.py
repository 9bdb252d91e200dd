"""Random alphanumeric strings."""

import random
import string

_LETTERS = string.ascii_lowercase + string.ascii_uppercase + string.digits


def random_string(n: int) -> str:
    """Return ``n`` random ASCII letters and digits."""
    if n < 0:
        raise ValueError("length must not be negative")
    return "".join(random.choices(_LETTERS, k=n))