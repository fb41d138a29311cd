from __future__ import annotations


def bulk_modulus(young_modulus: float, poisson_ratio: float) -> float:
    """Bulk modulus K = E / (3 (1 - 2 nu))."""
    return young_modulus / (3.0 * (1.0 - 2.0 * poisson_ratio))


def shear_modulus(young_modulus: float, poisson_ratio: float) -> float:
    """Shear modulus G = E / (2 (1 + nu))."""
    return young_modulus / (2.0 * (1.0 + poisson_ratio))


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as ``HH:MM:SS``."""
    seconds = max(int(round(seconds)), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
