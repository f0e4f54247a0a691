"""Prerequisite checking helpers for MCP tools."""


def require_state(engine, *, recording: bool = False, idle: bool = False, territories: bool = False) -> None:
    """Raise ValueError with a descriptive message if required state is not set.

    Usage in a tool:
        try:
            require_state(engine, recording=True)
        except ValueError as e:
            return f"Error: {e}"
    """
    if recording and not engine.session.is_recording:
        raise ValueError(
            "No recording in progress. Start one with start_recording."
        )
    if idle and engine.session.is_recording:
        raise ValueError(
            "A recording is in progress. Finish it with stop_recording or reset_recording."
        )
    if territories and len(engine.store) == 0:
        raise ValueError(
            "No territories claimed yet. Record a closed loop or load_territories first."
        )
