import functools
import re
import sys
import urllib.parse

from .rich_utils import Colors, console, print_error

BYTES_PER_KB = 1024
BYTES_PER_MB = BYTES_PER_KB * 1024
BYTES_PER_GB = BYTES_PER_MB * 1024
BYTES_PER_TB = BYTES_PER_GB * 1024
BYTES_PER_PB = BYTES_PER_TB * 1024

_DATA_SIZE_UNITS = (
    (BYTES_PER_PB, "PB"),
    (BYTES_PER_TB, "TB"),
    (BYTES_PER_GB, "GB"),
    (BYTES_PER_MB, "MB"),
    (BYTES_PER_KB, "kB"),
)

_DATA_SIZE_PATTERN = re.compile(r"(0|[1-9][0-9]{0,5})(\.[0-9]{1,5})? ?([KMGTP])?B?")

_UNIT_MULTIPLIERS = {
    "K": BYTES_PER_KB,
    "M": BYTES_PER_MB,
    "G": BYTES_PER_GB,
    "T": BYTES_PER_TB,
    "P": BYTES_PER_PB,
}


def handle_cli_errors(func):
    """Decorator to handle KeyboardInterrupt and general exceptions gracefully."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            console.print("\nInterrupted.", style=Colors.GREY)
            sys.exit(0)
        except Exception as e:
            console.print()  # Newline
            print_error(f"An unexpected error occurred: {e}")
            sys.exit(1)

    return wrapper


def setup_console():
    """Configures the console for proper unicode output on Windows."""
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")


def is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def trim_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def format_data_size(size: int) -> str:
    """Formats a byte count with 1024-based units, e.g. ``1536 -> '1.5 kB'``."""
    if size < 0:
        raise ValueError("Argument 'size' must be a positive integer or zero.")

    for unit, unit_name in _DATA_SIZE_UNITS:
        if size >= unit:
            if size % unit == 0:
                return f"{size // unit} {unit_name}"
            return f"{size / unit:.1f} {unit_name}"

    return f"{size} B"


def parse_data_size(size: str | None) -> int:
    """Parses strings like ``'512'``, ``'10 kB'`` or ``'1.5GB'`` into a byte count.

    Blank input parses to zero.
    """
    size = trim_to_none(size)
    if size is None:
        return 0

    size = size.upper()
    match = _DATA_SIZE_PATTERN.fullmatch(size)
    if match is None:
        raise ValueError(f"'{size}' does not match the pattern '{_DATA_SIZE_PATTERN.pattern}'.")

    number = float(match.group(1) + (match.group(2) or ""))
    unit = match.group(3)
    return int(number * _UNIT_MULTIPLIERS[unit]) if unit else int(number)


def is_valid_url(url: str | None) -> bool:
    """Checks that ``url`` is a syntactically valid absolute URL."""
    if is_blank(url) or any(ch.isspace() for ch in url):
        return False
    try:
        parts = urllib.parse.urlsplit(url)
        # Accessing the port validates it.
        parts.port
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc) and bool(parts.hostname)


def append_parameter_to_url(url: str, name: str, value: str) -> str:
    """Appends an already encoded ``name=value`` pair to the query of ``url``."""
    url, hash_sign, fragment = url.partition("#")
    if "?" not in url:
        url += "?"
    elif not url.endswith(("?", "&")):
        url += "&"
    return f"{url}{name}={value}{hash_sign}{fragment}"
