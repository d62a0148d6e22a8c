"""I/O utilities for loading robot descriptions.

This module parses robot description files into JAX-native arm models.
"""

from .urdf_parser import load_arm

__all__ = ["load_arm"]
