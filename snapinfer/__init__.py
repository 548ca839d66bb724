"""Hardware discovery and inference engine selection for snaps."""

__version__ = "0.1.0"