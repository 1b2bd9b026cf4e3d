"""Study monitoring: statistics blending and alert evaluation service."""

__version__ = "0.1.0"
