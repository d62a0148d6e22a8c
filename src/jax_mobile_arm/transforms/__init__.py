"""
JAX-based Lie group primitives for rigid-body kinematics.

This module provides JIT-compilable implementations of:
- SO(3) rotations (so3 module)
- SE(2) planar poses and their perturbations (se2 module)
- SE(3) rigid body transforms, adjoints and composition Jacobians (se3 module)

All functions are pure and stateless.
"""

from . import so3
from . import se2
from . import se3

__all__ = [
    "so3",
    "se2",
    "se3",
]
