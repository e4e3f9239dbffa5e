"""clipsync: local bookmark library with a remote SQL mirror."""

__version__ = "0.1.0"
