from typing import Optional

def jaccard(a: Optional[str], b: Optional[str]) -> float:
    """Token-set Jaccard similarity of two strings (0.0 - 1.0), case-insensitive."""
    if a is None or b is None:
        return 0.0
    a, b = a.lower(), b.lower()
    if a == b:
        return 1.0
    words_a, words_b = set(a.split()), set(b.split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)
