"""
求解层 (Solver Layer)
纯数学计算：闭式几何分解、限位截断、mimic 关节传播
"""

from .ik_core import (
    ArmGeometry,
    ReachStatus,
    build_arm_geometry,
    compute_error_vector,
    law_of_cosines,
    normalize_angle
)
from .mimic import MimicPropagator
from .result import DebugSegment, IKErrorCode, IKResult, QueryOptions, TargetPose
from .solve_ik import AnalyticalIKSolver, create_solver

__all__ = [
    'ArmGeometry',
    'ReachStatus',
    'build_arm_geometry',
    'compute_error_vector',
    'law_of_cosines',
    'normalize_angle',
    'MimicPropagator',
    'DebugSegment',
    'IKErrorCode',
    'IKResult',
    'QueryOptions',
    'TargetPose',
    'AnalyticalIKSolver',
    'create_solver'
]
