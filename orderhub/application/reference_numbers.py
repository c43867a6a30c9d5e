"""Human-readable order references.

A reference embeds the recipient's 10-digit mobile number and, when the
tenant enables it, a prefix (``REF`` unless configured otherwise):

    REF-9876543210-K3X9QZ     auto-generated
    REF-INV42-9876543210      from a caller-supplied value
"""

import random
import re
import string
import time
from typing import Optional

DEFAULT_PREFIX = "REF"
SUFFIX_LENGTH = 6
_ALPHABET = string.digits + string.ascii_uppercase

def normalize_mobile(mobile: str) -> str:
    """Strip formatting and the 91 / 910 country prefix."""
    digits = re.sub(r"\D", "", mobile or "")
    if len(digits) == 12 and digits.startswith("91"):
        return digits[2:]
    if len(digits) == 13 and digits.startswith("91"):
        return digits[3:]
    return digits

def _base36(value: int) -> str:
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = _ALPHABET[rem] + out
    return out or "0"

def _suffix() -> str:
    # last 3 chars of the millisecond clock plus 3 random chars
    clock = _base36(int(time.time() * 1000))[-3:].rjust(3, "0")
    return clock + "".join(random.choices(_ALPHABET, k=SUFFIX_LENGTH - 3))

def _prefixed(body: str, prefix_enabled: bool, prefix: Optional[str]) -> str:
    if not prefix_enabled:
        return body
    return f"{(prefix or '').strip() or DEFAULT_PREFIX}-{body}"

def generate(
    mobile: str,
    user_supplied_value: Optional[str] = None,
    prefix_enabled: bool = True,
    prefix: Optional[str] = DEFAULT_PREFIX,
) -> str:
    national = normalize_mobile(mobile)
    value = (user_supplied_value or "").strip()
    if value:
        return _prefixed(f"{value}-{national}", prefix_enabled, prefix)
    return _prefixed(f"{national}-{_suffix()}", prefix_enabled, prefix)
