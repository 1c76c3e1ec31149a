# campus_connect/utils/text.py

# Wording helpers for user-facing messages.


def count_of(n: int, noun: str) -> str:
    """'1 order', '3 orders'."""
    return f"{n} {noun}" if n == 1 else f"{n} {noun}s"
