"""VDFlow — volume-delta flow accumulation / distribution detector."""

__version__ = "1.0.0"
