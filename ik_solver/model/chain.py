"""
运动链模型

由宿主提供的链描述（有序关节列表）构建一次，之后只读，可在并发求解之间共享。
负责：
- 校验拓扑：恰好一条链、恰好一个末端坐标系、链上恰好 4 个旋转关节
- 按结构位置识别 mount / shoulder / elbow / wrist
- 建立关节名 -> 状态向量下标、主关节 -> mimic 关节列表的映射
"""
import logging
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ik_solver.exceptions import ConfigurationError
from .joint import JointNode, JointType, SingleDofJoint

logger = logging.getLogger(__name__)

ARM_JOINT_COUNT = 4


@dataclass
class ChainDescription:
    """
    宿主提供的链描述

    :param base_link: 根连杆（世界/基座坐标系）
    :param joints: 有序关节列表，顺序即关节状态向量的顺序
    :param chains: (链起点连杆, 链末端连杆) 列表，为空时由 tip_frames 推出
    :param tip_frames: 末端坐标系列表，为空时取链末端
    """
    base_link: str
    joints: List[JointNode]
    chains: List[Tuple[str, str]] = field(default_factory=list)
    tip_frames: List[str] = field(default_factory=list)


class JointChain:
    """
    初始化后只读的运动链。

    关节对象之间的父子关系在这里建立；关节变量不在这里，见 KinematicState。
    """

    def __init__(self, description: ChainDescription):
        self.base_link = description.base_link
        self.joints: List[JointNode] = list(description.joints)

        self._joints_by_name: Dict[str, JointNode] = {}
        self._joint_by_child_link: Dict[str, JointNode] = {}
        self._build_tree()

        self.chains = self._resolve_chains(description)
        self.tip_frames = self._resolve_tip_frames(description)
        chain_base, chain_tip = self.chains[0]
        self.tip_link = chain_tip
        self.path = self._find_path(chain_base, chain_tip)

        # 关节变量列表：所有单自由度关节（包括链外的 mimic 关节），顺序即状态向量顺序
        self.variables: List[SingleDofJoint] = []
        for joint in self.joints:
            joint.append_variables(self.variables)
        self.joint_index: Dict[str, int] = {
            joint.name: index for index, joint in enumerate(self.variables)}

        self.mimic_targets: Dict[str, List[SingleDofJoint]] = self._build_mimic_targets()

        self._validate_arm_joints()
        self.mount = self._require_joint('mount', None)
        self.shoulder = self._require_joint('shoulder', self.mount)
        self.elbow = self._require_joint('elbow', self.shoulder)
        self.wrist = self._require_joint('wrist', self.elbow)

        self._log_configuration()

    # ------------------------------------------------------------------
    # 构建与校验
    # ------------------------------------------------------------------

    def _build_tree(self):
        for joint in self.joints:
            if joint.name in self._joints_by_name:
                raise ConfigurationError(f"Duplicate joint name '{joint.name}'")
            if joint.child_link == self.base_link:
                raise ConfigurationError(
                    f"Joint '{joint.name}' uses base link '{self.base_link}' as its child")
            if joint.child_link in self._joint_by_child_link:
                other = self._joint_by_child_link[joint.child_link]
                raise ConfigurationError(
                    f"Link '{joint.child_link}' has more than one parent joint: "
                    f"'{other.name}' and '{joint.name}'")
            self._joints_by_name[joint.name] = joint
            self._joint_by_child_link[joint.child_link] = joint

        # 建立父子关系
        for joint in self.joints:
            if joint.parent_link == self.base_link:
                continue
            parent = self._joint_by_child_link.get(joint.parent_link)
            if parent is None:
                raise ConfigurationError(
                    f"Parent link '{joint.parent_link}' not found for joint '{joint.name}'")
            parent.add_child(joint)

        # 每个关节都必须能回溯到 base_link，否则存在环
        for joint in self.joints:
            visited = set()
            current = joint
            while current is not None:
                if current.name in visited:
                    raise ConfigurationError(f"Joint '{joint.name}' is part of a cycle")
                visited.add(current.name)
                current = current.parent

    def _resolve_chains(self, description: ChainDescription) -> List[Tuple[str, str]]:
        chains = [tuple(chain) for chain in description.chains]
        if not chains and description.tip_frames:
            chains = [(self.base_link, description.tip_frames[0])]
        if len(chains) != 1:
            raise ConfigurationError(
                f"Only one chain supported in planning group, found {len(chains)}")
        for link in chains[0]:
            if not self.has_link(link):
                raise ConfigurationError(f"Chain link '{link}' not found")
        return chains

    def _resolve_tip_frames(self, description: ChainDescription) -> List[str]:
        tip_frames = list(description.tip_frames) or [self.chains[0][1]]
        if len(tip_frames) != 1:
            raise ConfigurationError(
                f"Only one tip frame supported, found {len(tip_frames)}")
        if not self.has_link(tip_frames[0]):
            raise ConfigurationError(f"Tip frame '{tip_frames[0]}' not found")
        return tip_frames

    def _find_path(self, base_link: str, tip_link: str) -> List[JointNode]:
        """
        路径查找：从 tip_link 开始向上遍历父关节，直到 base_link

        :return: 从 base_link 到 tip_link 顺序的关节列表
        """
        path: List[JointNode] = []
        link = tip_link
        while link != base_link:
            joint = self._joint_by_child_link.get(link)
            if joint is None:
                raise ConfigurationError(
                    f"Cannot find path from {base_link} to {tip_link}")
            path.append(joint)
            link = joint.parent_link
        path.reverse()
        return path

    def _build_mimic_targets(self) -> Dict[str, List[SingleDofJoint]]:
        targets: Dict[str, List[SingleDofJoint]] = {}
        for joint in self.variables:
            if joint.mimic is None:
                continue
            master = self._joints_by_name.get(joint.mimic.joint)
            if master is None or master.name not in self.joint_index:
                raise ConfigurationError(
                    f"Mimic joint '{joint.name}' refers to missing master joint "
                    f"'{joint.mimic.joint}'")
            if master.mimic is not None:
                raise ConfigurationError(
                    f"Mimic joint '{joint.name}' mimics '{master.name}', "
                    f"which is itself a mimic joint")
            if joint.mimic.factor == 0.0:
                raise ConfigurationError(
                    f"Mimic joint '{joint.name}' has a zero mimic factor")
            targets.setdefault(master.name, []).append(joint)
        return targets

    def _validate_arm_joints(self):
        moving = [joint for joint in self.path if joint.get_dof() > 0]
        if len(moving) != ARM_JOINT_COUNT or any(
                joint.joint_type != JointType.REVOLUTE for joint in moving):
            description = ", ".join(
                f"{joint.name} ({joint.joint_type.value})" for joint in moving)
            raise ConfigurationError(
                f"Expected a chain of {ARM_JOINT_COUNT} revolute joints "
                f"(mount, shoulder, elbow, wrist), found: [{description}]")

    def _require_joint(self, role: str, parent: Optional[JointNode]) -> SingleDofJoint:
        joint = self.find_joint(JointType.REVOLUTE, parent)
        if joint is None:
            raise ConfigurationError(f"Failed to find {role} joint")
        if joint not in self.path:
            raise ConfigurationError(
                f"{role.capitalize()} joint '{joint.name}' is not on the chain "
                f"{self.chains[0][0]} -> {self.chains[0][1]}")
        return joint

    def _log_configuration(self):
        logger.info("Chain: %s -> %s", self.chains[0][0], self.chains[0][1])
        for joint in self.variables:
            limits = joint.limits
            logger.info(
                "Joint %s: %s %s axis [%g %g %g] limits min %g max %g vel %g",
                joint.name,
                joint.joint_type.value,
                "mimic" if joint.is_mimic else "active",
                joint.axis[0], joint.axis[1], joint.axis[2],
                limits.min_position, limits.max_position, limits.max_velocity)
        for link in self.link_names:
            logger.info("Link %s", link)
        logger.info(
            "Arm joints: mount %s, shoulder %s, elbow %s, wrist %s",
            self.mount.name, self.shoulder.name, self.elbow.name, self.wrist.name)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    @property
    def joint_count(self) -> int:
        return len(self.variables)

    @property
    def joint_names(self) -> List[str]:
        return [joint.name for joint in self.variables]

    @property
    def link_names(self) -> List[str]:
        return [self.base_link] + [joint.child_link for joint in self.joints]

    @property
    def root_joints(self) -> List[JointNode]:
        return [joint for joint in self.joints if joint.parent is None]

    def has_link(self, link: str) -> bool:
        return link == self.base_link or link in self._joint_by_child_link

    def get_joint(self, name: str) -> JointNode:
        if name not in self._joints_by_name:
            raise KeyError(f"Joint '{name}' not found")
        return self._joints_by_name[name]

    def parent_joint_of_link(self, link: str) -> Optional[JointNode]:
        return self._joint_by_child_link.get(link)

    def find_joint(self, joint_type: JointType,
                   parent: Optional[JointNode] = None) -> Optional[SingleDofJoint]:
        """
        按结构位置查找关节：返回第一个类型匹配、且父连杆等于 parent 子连杆的关节；
        parent 为 None 时返回第一个类型匹配的关节。找不到返回 None。
        """
        for joint in self.variables:
            if joint.joint_type != joint_type:
                continue
            if parent is None or joint.parent_link == parent.child_link:
                return joint
        return None

    def joint_axis(self, joint: JointNode) -> np.ndarray:
        """关节运动轴（关节局部坐标系）"""
        if not isinstance(joint, SingleDofJoint):
            raise ValueError(f"Joint '{joint.name}' has no motion axis")
        return joint.axis.copy()

    def supports_single_dof(self) -> bool:
        return all(joint.get_dof() in (0, 1) for joint in self.joints)
