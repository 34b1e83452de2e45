"""
4 自由度机械臂（mount, shoulder, elbow, wrist）解析逆运动学求解器
"""

from .exceptions import ConfigurationError
from .model import ChainDescription, JointChain, KinematicState
from .solver import AnalyticalIKSolver, IKErrorCode, IKResult, TargetPose, create_solver

__version__ = "0.1.0"

__all__ = [
    'ConfigurationError',
    'ChainDescription',
    'JointChain',
    'KinematicState',
    'AnalyticalIKSolver',
    'IKErrorCode',
    'IKResult',
    'TargetPose',
    'create_solver'
]
