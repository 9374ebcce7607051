"""Error types raised by the DrillForge engine."""


class InvalidInput(ValueError):
    """Caller-supplied data the engine refuses to work with."""
