import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_lowercase


def gen_id(prefix: str, length: int = 10) -> str:
    """
    Opaque type-prefixed id, e.g. ``ORD-lq2k9x0a7b3f``.

    A base36 millisecond clock keeps ids roughly creation-ordered; the random
    tail keeps two ids minted in the same millisecond apart.
    """
    millis = int(time.time() * 1000)
    stamp = ""
    while millis:
        millis, rem = divmod(millis, 36)
        stamp = _ALPHABET[rem] + stamp
    tail = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{prefix}-{stamp}{tail}"


def now_ms() -> int:
    return int(time.time() * 1000)
