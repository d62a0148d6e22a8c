"""Core data structures for JAX mobile-arm kinematics.

This module provides the immutable robot descriptions and the request and
result containers shared by the kinematics routines.
"""

from .arm import Arm
from .mobile_arm import MobileConfiguration, Pose2MobileArm
from .requests import FKRequest, FKResult

__all__ = ["Arm", "MobileConfiguration", "Pose2MobileArm", "FKRequest", "FKResult"]
