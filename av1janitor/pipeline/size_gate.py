from pathlib import Path

from av1janitor.domain.models import SizeGateFailed, SizeGatePassed, SizeGateVerdict


def evaluate_size_gate(original_bytes: int, new_bytes: int, factor: float) -> SizeGateVerdict:
    """Passes when new/original <= factor (boundary inclusive)."""
    if original_bytes <= 0:
        raise ValueError(f"original size must be positive, got {original_bytes}")
    ratio = new_bytes / original_bytes
    if ratio <= factor:
        return SizeGatePassed(original_bytes=original_bytes, new_bytes=new_bytes, savings_ratio=1.0 - ratio)
    return SizeGateFailed(original_bytes=original_bytes, new_bytes=new_bytes, ratio=ratio, threshold=factor)


def check_size_gate(original_path: Path, new_path: Path, factor: float) -> SizeGateVerdict:
    return evaluate_size_gate(original_path.stat().st_size, new_path.stat().st_size, factor)


def format_rejection_reason(verdict: SizeGateFailed) -> str:
    return (
        f"Size gate failed: {verdict.ratio * 100:.1f}% of original "
        f"(max: {verdict.threshold * 100:.1f}%)"
    )
