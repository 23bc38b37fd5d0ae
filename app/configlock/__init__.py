"""configlock - time-windowed write protection for configuration files."""

__version__ = "0.3.0"
