"""ruuvitrack - forward RuuviTag readings to a remote collection endpoint."""

__version__ = "0.1.0"
