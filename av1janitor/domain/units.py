KIB = 1024
MIB = KIB * 1024
GIB = MIB * 1024
TIB = GIB * 1024


def format_bytes(size: int) -> str:
    """Formats a byte count with the largest fitting binary unit."""
    if size >= TIB:
        return f"{size / TIB:.2f} TiB"
    if size >= GIB:
        return f"{size / GIB:.2f} GiB"
    if size >= MIB:
        return f"{size / MIB:.1f} MiB"
    if size >= KIB:
        return f"{size / KIB:.0f} KiB"
    return f"{size} B"


def _parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_size_with_unit(value: str) -> int:
    """Parses ffmpeg sizes such as '12345kB', '443KiB' or '2GB' into bytes (0 if unparsable).

    Newer ffmpeg prints binary suffixes (KiB/MiB/GiB); older builds print kB/MB/GB
    for the same 1024-based values.
    """
    if value.endswith("KiB"):
        return _parse_int(value[:-3]) * KIB
    if value.endswith("MiB"):
        return _parse_int(value[:-3]) * MIB
    if value.endswith("GiB"):
        return _parse_int(value[:-3]) * GIB
    if value.endswith("kB"):
        return _parse_int(value[:-2]) * KIB
    if value.endswith("MB"):
        return _parse_int(value[:-2]) * MIB
    if value.endswith("GB"):
        return _parse_int(value[:-2]) * GIB
    return _parse_int(value)


def parse_time_to_seconds(value: str) -> float:
    """Parses 'HH:MM:SS.ff' into seconds (0.0 if malformed)."""
    parts = value.split(":")
    if len(parts) != 3:
        return 0.0
    total = 0.0
    for part, scale in zip(parts, (3600.0, 60.0, 1.0)):
        try:
            total += float(part) * scale
        except ValueError:
            pass
    return total
