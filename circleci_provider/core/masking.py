"""
Partial masking of secret values.

CircleCI never returns a stored secret in full; it returns ``xxxx`` followed
by a short suffix. The same convention is applied locally so a value that was
just written can be compared with what the API reports back.
"""

MASK_PREFIX = "xxxx"

# (upper bound of input length, characters revealed)
_REVEAL_TABLE = (
    (1, 0),
    (3, 1),
    (5, 2),
    (7, 3),
)
_MAX_REVEALED = 4


def _revealed_length(length: int) -> int:
    """Number of trailing characters kept for an input of the given length."""
    if length == 0:
        return 0
    for upper, take in _REVEAL_TABLE:
        if length <= upper:
            return take
    return _MAX_REVEALED


def mask_secret(value: str) -> str:
    """
    Mask a secret the way CircleCI displays it.

    Examples:
        mask_secret("a")         -> "xxxx"
        mask_secret("aa")        -> "xxxxa"
        mask_secret("aaaaaaaa")  -> "xxxxaaaa"

    """
    take = _revealed_length(len(value))
    return MASK_PREFIX + value[len(value) - take :]


def is_masked(value: str) -> bool:
    """Check if a value already has the mask prefix."""
    return value.startswith(MASK_PREFIX)
