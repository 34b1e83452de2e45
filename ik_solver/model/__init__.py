"""
模型层 (Model Layer)
运动链描述与状态，负责解析关节定义、维护父子层级、识别 mount/shoulder/elbow/wrist

导出：
- JointNode: 抽象基类，定义所有关节的通用接口
- FixedJoint: 固定关节，无自由度，用于结构连接或末端执行器
- RevoluteJoint: 旋转关节，1自由度，绕固定轴旋转
- PrismaticJoint: 移动关节，1自由度，沿固定轴滑动
- JointChain: 初始化后只读的运动链模型
- KinematicState: 关节变量与连杆全局变换的快照（每次求解一份）
"""

from .joint import (
    JointType,
    JointLimits,
    MimicRelation,
    JointNode,
    SingleDofJoint,
    FixedJoint,
    RevoluteJoint,
    PrismaticJoint
)
from .chain import ChainDescription, JointChain
from .state import KinematicState

__all__ = [
    'JointType',
    'JointLimits',
    'MimicRelation',
    'JointNode',
    'SingleDofJoint',
    'FixedJoint',
    'RevoluteJoint',
    'PrismaticJoint',
    'ChainDescription',
    'JointChain',
    'KinematicState'
]
