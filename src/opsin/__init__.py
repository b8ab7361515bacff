"""Opsin: 3D LUT application with a precomputed 24-bit lookup table."""

__version__ = "0.3.0"
