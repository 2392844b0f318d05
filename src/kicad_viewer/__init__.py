"""KiCad schematic and board viewer core."""

__version__ = "0.3.0"
