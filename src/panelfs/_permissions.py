"""POSIX permission bit helpers shared by providers and the UI layer."""

from __future__ import annotations

import stat

_RWX_BITS = (
    (stat.S_IRUSR, "r"),
    (stat.S_IWUSR, "w"),
    (stat.S_IXUSR, "x"),
    (stat.S_IRGRP, "r"),
    (stat.S_IWGRP, "w"),
    (stat.S_IXGRP, "x"),
    (stat.S_IROTH, "r"),
    (stat.S_IWOTH, "w"),
    (stat.S_IXOTH, "x"),
)

# (position in the 10-char string, bit, letter when x is also set)
_SPECIAL_BITS = (
    (3, stat.S_ISUID, "s"),
    (6, stat.S_ISGID, "s"),
    (9, stat.S_ISVTX, "t"),
)

EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def format_mode(mode: int, *, is_dir: bool = False, is_symlink: bool = False) -> str:
    """Render permission bits as ``ls -l`` does, e.g. ``drwxr-xr-x``."""
    kind = "l" if is_symlink else "d" if is_dir else "-"
    chars = [kind] + [letter if mode & bit else "-" for bit, letter in _RWX_BITS]
    for pos, bit, letter in _SPECIAL_BITS:
        if mode & bit:
            chars[pos] = letter if chars[pos] == "x" else letter.upper()
    return "".join(chars)


def format_octal(mode: int) -> str:
    """Four-digit octal form, e.g. ``0755``."""
    return format(stat.S_IMODE(mode), "o").rjust(4, "0")


def parse_octal(text: str) -> int:
    """Parse ``"755"`` / ``"0755"`` into mode bits.

    :raises ValueError: If ``text`` is not a valid octal permission value.
    """
    value = int(text, 8)
    if value < 0 or value > 0o7777:
        raise ValueError(f"Permission value out of range: {text!r}")
    return value


def parse_mode_string(text: str) -> int:
    """Inverse of :func:`format_mode` for the nine permission characters.

    The leading type character is ignored. Unknown characters count as
    unset bits, so partially garbled server output still yields a value.
    """
    if len(text) < 10:
        return 0
    chars = text[:10]
    mode = 0
    for (bit, letter), char in zip(_RWX_BITS, chars[1:]):
        if char == letter:
            mode |= bit
    for pos, bit, letter in _SPECIAL_BITS:
        char = chars[pos]
        if char in (letter, letter.upper()):
            mode |= bit
            if char == letter:
                mode |= _RWX_BITS[pos - 1][0]
    return mode
