"""URDF parser for loading serial arms into JAX-native data structures.

The URDF must describe a single unbranched chain. Revolute, continuous and
prismatic joints become arm joints; fixed joints are folded into the
neighbouring fixed transforms of the Arm.
"""

from logging import getLogger
from typing import Dict, List, Optional

import jax.numpy as jnp
import numpy as np
from lxml import etree

from jax_mobile_arm.core.arm import Arm
from jax_mobile_arm.transforms import se3

logger = getLogger(__name__)

MOVABLE_JOINT_TYPES = ('revolute', 'continuous', 'prismatic')


def load_arm(urdf_path: str, base_pose: Optional[np.ndarray] = None) -> Arm:
    """Load a serial-chain URDF file as an Arm.

    Args:
        urdf_path: Path to the URDF file to load.
        base_pose: Optional (4, 4) pose of the URDF root link.

    Returns:
        Arm: One joint per movable URDF joint, in chain order from the root.

    Raises:
        ValueError: If the URDF has no unique root, branches, or has no
            movable joints.
    """
    tree = etree.parse(urdf_path)
    root = tree.getroot()

    all_links = {link.get('name') for link in root.findall('.//link')}

    children: Dict[str, List[etree._Element]] = {}
    child_links = set()
    for joint in root.findall('.//joint'):
        parent_elem = joint.find('parent')
        child_elem = joint.find('child')
        if parent_elem is None or child_elem is None:
            continue
        children.setdefault(parent_elem.get('link'), []).append(joint)
        child_links.add(child_elem.get('link'))

    root_links = all_links - child_links
    if len(root_links) != 1:
        raise ValueError(f"Expected exactly one root link, found: {root_links}")
    root_link = root_links.pop()

    # Walk the chain from the root, accumulating fixed transforms
    joint_names: List[str] = []
    link_names: List[str] = []
    pre_transforms = []
    joint_axes = []
    post_transforms = []

    pending = np.eye(4)
    current_link = root_link
    while current_link in children:
        joints = children[current_link]
        if len(joints) != 1:
            names = [j.get('name') for j in joints]
            raise ValueError(f"Link '{current_link}' branches into joints {names}, expected a serial chain")
        joint = joints[0]
        joint_type = joint.get('type')
        origin = _parse_origin(joint)
        current_link = joint.find('child').get('link')

        if joint_type in MOVABLE_JOINT_TYPES:
            joint_names.append(joint.get('name'))
            link_names.append(current_link)
            pre_transforms.append(pending @ origin)
            joint_axes.append(_parse_axis(joint, joint_type))
            post_transforms.append(np.eye(4))
            pending = np.eye(4)
        elif joint_type == 'fixed':
            pending = pending @ origin
        else:
            raise ValueError(f"Unsupported joint type '{joint_type}' for joint '{joint.get('name')}'")

    if not joint_names:
        raise ValueError(f"No movable joints found in {urdf_path}")

    # Fixed frames past the last joint become part of the last link
    if current_link != link_names[-1]:
        post_transforms[-1] = pending
        link_names[-1] = current_link

    logger.debug("Loaded arm from %s: root '%s', joints %s, tip '%s'",
                 urdf_path, root_link, joint_names, link_names[-1])

    return Arm.create(
        pre_transforms=jnp.asarray(np.stack(pre_transforms)),
        joint_axes=jnp.asarray(np.stack(joint_axes)),
        post_transforms=jnp.asarray(np.stack(post_transforms)),
        base_pose=base_pose,
        joint_names=joint_names,
        link_names=link_names,
    )


def _parse_origin(joint: etree._Element) -> np.ndarray:
    """Read a joint's <origin> as a (4, 4) transform, identity if absent."""
    origin_elem = joint.find('origin')
    if origin_elem is None:
        return np.eye(4)
    xyz = [float(x) for x in origin_elem.get('xyz', '0 0 0').split()]
    rpy = [float(x) for x in origin_elem.get('rpy', '0 0 0').split()]
    return np.asarray(se3.from_xyz_rpy(xyz, rpy))


def _parse_axis(joint: etree._Element, joint_type: str) -> np.ndarray:
    """Read a movable joint's unit axis as a rotation-first twist."""
    axis_elem = joint.find('axis')
    axis_str = axis_elem.get('xyz', '1 0 0') if axis_elem is not None else '1 0 0'
    axis_xyz = np.array([float(x) for x in axis_str.split()])
    axis_xyz = axis_xyz / np.linalg.norm(axis_xyz)

    if joint_type == 'prismatic':
        return np.concatenate([np.zeros(3), axis_xyz])
    return np.concatenate([axis_xyz, np.zeros(3)])
