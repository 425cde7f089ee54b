def format_duration(seconds: float) -> str:
    """Render a duration as ``12s``, ``3min4s`` or ``2h5min``.

    Args:
        seconds: Elapsed or remaining time in seconds.

    Returns:
        Compact human-readable duration.
    """

    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        minutes = int(seconds // 60)
        remaining_seconds = round(seconds % 60)
        return f"{minutes}min{remaining_seconds}s"
    hours = int(seconds // 3600)
    remaining_minutes = round((seconds % 3600) / 60)
    return f"{hours}h{remaining_minutes}min"
