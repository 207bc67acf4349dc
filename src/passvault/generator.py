"""Random password generation."""

import secrets
import string

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
DIGITS = string.digits
SYMBOLS = "!$%&()/?"
ALPHABET = LOWERCASE + UPPERCASE + DIGITS + SYMBOLS

CHARACTER_CLASSES = (LOWERCASE, UPPERCASE, DIGITS, SYMBOLS)
DEFAULT_LENGTH = 20


def generate_password(length=DEFAULT_LENGTH, rng=None):
    """Generate a password containing every character class at least once.

    Args:
        length: Number of characters, at least one per class
        rng: random.Random-compatible source (default: secrets.SystemRandom)

    Raises:
        ValueError: If length is smaller than the number of classes

    """
    if length < len(CHARACTER_CLASSES):
        raise ValueError(
            f"Password length must be at least {len(CHARACTER_CLASSES)}, got {length}"
        )

    rng = rng or secrets.SystemRandom()

    chars = [rng.choice(charset) for charset in CHARACTER_CLASSES]
    chars.extend(rng.choice(ALPHABET) for _ in range(length - len(chars)))

    # random.Random.shuffle is an in-place Fisher-Yates
    rng.shuffle(chars)
    return "".join(chars)
