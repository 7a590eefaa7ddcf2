"""Short human-friendly identifiers: public game ids (for URLs) and join codes (for private games)."""

import random
import re

# Base32 without I, O, 0, 1 to avoid confusion when read aloud / typed
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PUBLIC_ID_LENGTH = 8
CODE_LENGTH = 6
MAX_GENERATION_ATTEMPTS = 5

_CODE_PATTERN = re.compile(r"^[A-HJ-NP-Z2-9]{6}$", re.IGNORECASE)


def _generate(length: int, rng: random.Random | None = None) -> str:
    source = rng or random
    return "".join(source.choice(ALPHABET) for _ in range(length))


def generate_public_id(rng: random.Random | None = None) -> str:
    return _generate(PUBLIC_ID_LENGTH, rng)


def generate_game_code(rng: random.Random | None = None) -> str:
    return _generate(CODE_LENGTH, rng)


def is_valid_code(code: str) -> bool:
    return bool(_CODE_PATTERN.match(code))


def normalize_code(code: str) -> str:
    return code.strip().upper()
