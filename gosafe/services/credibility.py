from __future__ import annotations


def score(confirmations: int, denials: int) -> int:
    """
    Credibility of a report as a 0-100 integer: the share of confirmations
    among all votes, rounded to nearest with halves going up (12.5 -> 13).
    A report with no votes scores 0.
    """
    if confirmations < 0 or denials < 0:
        raise ValueError("vote counts must be non-negative")

    total = confirmations + denials
    if total == 0:
        return 0
    # floor(100*c/total + 1/2) without going through floats
    return (200 * confirmations + total) // (2 * total)
