import re
import time
import random
import string
import unicodedata
from typing import Iterable, Optional

MAX_CODE_LENGTH = 32
_NON_CODE_CHARS = re.compile(r'[^A-Z0-9]+')
_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase


def normalize_code(text: Optional[str]) -> str:
    """Folds accents, uppercases and joins words with '_' ("Défense & Recours" -> "DEFENSE_RECOURS")."""
    if not text:
        return ''
    folded = unicodedata.normalize('NFKD', text).encode('ascii', 'ignore').decode('ascii')
    code = _NON_CODE_CHARS.sub('_', folded.upper()).strip('_')
    return code[:MAX_CODE_LENGTH].rstrip('_')


def _base36(number: int) -> str:
    digits = ''
    while True:
        number, remainder = divmod(number, 36)
        digits = _SUFFIX_ALPHABET[remainder] + digits
        if number == 0:
            return digits


def fallback_code(slug: str) -> str:
    """Builds `<slug>_<base36 timestamp><4 random chars>` within the code length limit."""
    suffix = _base36(int(time.time() * 1000)) + ''.join(random.choices(_SUFFIX_ALPHABET, k=4))
    slug = (slug or 'CODE')[:MAX_CODE_LENGTH - len(suffix) - 1].rstrip('_') or 'CODE'
    return f"{slug}_{suffix}"


def derive_code(name: str, taken: Iterable[str]) -> str:
    """Code derived from a name; falls back to a suffixed code when empty or already taken."""
    code = normalize_code(name)
    if code and code not in set(taken):
        return code
    return fallback_code(code)
