"""
JAX Mobile Arm: kinematics of a planar mobile base carrying a serial arm.

This library computes link poses and their exact Jacobians with respect to
the full configuration (planar base pose + joint values), for use by
gradient-based trajectory optimization.
"""

import jax
jax.config.update("jax_enable_x64", True)

from . import transforms
from . import core
from . import io
from . import chain
from . import mobile
from .core import Arm, FKRequest, FKResult, MobileConfiguration, Pose2MobileArm
from .exceptions import ErrorKind, InvalidRequestError, KinematicsError, UnimplementedPathError

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "io",
    "chain",
    "mobile",
    "Arm",
    "FKRequest",
    "FKResult",
    "MobileConfiguration",
    "Pose2MobileArm",
    "ErrorKind",
    "InvalidRequestError",
    "KinematicsError",
    "UnimplementedPathError",
]
