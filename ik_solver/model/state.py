"""
运动学状态

关节变量 + 连杆全局变换的快照。求解器在初始化时建一份默认状态作为模板（之后不再修改），
每次求解 copy() 出自己的一份，求解过程中的写入互不可见。
"""
import math
import numpy as np
from typing import Dict, Optional, Sequence

from .chain import JointChain
from .joint import JointNode, SingleDofJoint


class KinematicState:

    def __init__(self, chain: JointChain, positions: Optional[Sequence[float]] = None):
        """
        :param chain: 运动链（只读共享）
        :param positions: 初始关节状态向量，None 表示默认值
        """
        self.chain = chain
        self.positions: np.ndarray = np.zeros(chain.joint_count, dtype=np.float64)
        self._link_transforms: Dict[str, np.ndarray] = {}
        self._dirty = True
        if positions is None:
            self.set_to_default_values()
        else:
            self.set_joint_positions(positions)

    def copy(self) -> 'KinematicState':
        state = KinematicState.__new__(KinematicState)
        state.chain = self.chain
        state.positions = self.positions.copy()
        state._link_transforms = {
            link: transform.copy() for link, transform in self._link_transforms.items()}
        state._dirty = self._dirty
        return state

    # ------------------------------------------------------------------
    # 关节变量
    # ------------------------------------------------------------------

    def set_to_default_values(self):
        for index, joint in enumerate(self.chain.variables):
            self.positions[index] = joint.default_position()
        self._dirty = True

    def set_joint_positions(self, positions: Sequence[float]):
        positions = np.asarray(positions, dtype=np.float64)
        if positions.shape != (self.chain.joint_count,):
            raise ValueError(
                f"Expected {self.chain.joint_count} joint positions, got shape {positions.shape}")
        self.positions[:] = positions
        self._dirty = True

    def set_joint_position(self, joint: JointNode, value: float):
        self.positions[self.chain.joint_index[joint.name]] = value
        self._dirty = True

    def get_joint_position(self, joint: JointNode) -> float:
        return float(self.positions[self.chain.joint_index[joint.name]])

    def enforce_bounds(self, joint: Optional[SingleDofJoint] = None):
        """将关节值限制在限位内；joint 为 None 时处理所有关节。NaN 值取上限。"""
        joints = self.chain.variables if joint is None else [joint]
        for item in joints:
            index = self.chain.joint_index[item.name]
            value = self.positions[index]
            if math.isnan(value):
                value = item.limits.max_position
            self.positions[index] = item.clamp(value)
        self._dirty = True

    def satisfies_bounds(self, tolerance: float = 0.0) -> bool:
        return all(
            joint.limits.contains(self.positions[index], tolerance)
            for index, joint in enumerate(self.chain.variables))

    # ------------------------------------------------------------------
    # 正向运动学
    # ------------------------------------------------------------------

    def _joint_value(self, joint: JointNode) -> float:
        index = self.chain.joint_index.get(joint.name)
        return 0.0 if index is None else float(self.positions[index])

    def update_global_transforms(self):
        """
        从 base_link 出发递归计算所有连杆的全局变换
        """
        self._link_transforms = {self.chain.base_link: np.identity(4, dtype=np.float64)}

        def traverse(joint: JointNode, parent_transform: np.ndarray):
            # global = parent_global @ local
            transform = parent_transform @ joint.get_local_matrix(self._joint_value(joint))
            self._link_transforms[joint.child_link] = transform
            for child in joint.children:
                traverse(child, transform)

        for root in self.chain.root_joints:
            traverse(root, self._link_transforms[self.chain.base_link])
        self._dirty = False

    def global_link_transform(self, link: str) -> np.ndarray:
        if self._dirty:
            self.update_global_transforms()
        if link not in self._link_transforms:
            raise KeyError(f"Link '{link}' not found")
        return self._link_transforms[link].copy()

    def joint_transform(self, joint: JointNode) -> np.ndarray:
        """关节在当前变量下的局部变换（父连杆 -> 子连杆）"""
        return joint.get_local_matrix(self._joint_value(joint))

    def link_length(self, base_link: str, tip_link: str) -> np.ndarray:
        """两连杆原点在全局坐标系下的平移差（tip - base）"""
        base = self.global_link_transform(base_link)
        tip = self.global_link_transform(tip_link)
        return tip[:3, 3] - base[:3, 3]
