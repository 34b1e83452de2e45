"""
解析 IK 求解器实现

4 自由度串联臂（mount/yaw, shoulder, elbow, wrist）的闭式解：
mount 角由 atan2 减去固定机械偏置得到，shoulder/elbow 由余弦定理分解三角形得到，
wrist 使末端偏移沿 shoulder -> 目标 射线方向。每个角度都被限位截断，mimic 关节随之更新。

求解器只持有只读数据（运动链、手臂几何、默认状态模板），每次求解复制自己的
KinematicState，所以同一个实例可以被多个线程同时调用。
"""
import logging
import math
import numpy as np
from typing import List, Optional, Sequence, Tuple, Union

from ik_solver.exceptions import ConfigurationError
from ik_solver.model import ChainDescription, JointChain, JointType, KinematicState, SingleDofJoint
from .ik_core import (
    ArmGeometry,
    PlanarSolution,
    ReachStatus,
    arm_plane_target,
    build_arm_geometry,
    fit_angle_to_limits,
    solve_mount_angle,
    solve_planar,
    solve_wrist_angle
)
from .mimic import MimicPropagator
from .result import (
    DebugSegment,
    IKErrorCode,
    IKResult,
    QueryOptions,
    SolutionCallback,
    TargetLike,
    TargetPose,
    as_target_pose
)

TARGET_RAY_COLOR = (1.0, 0.0, 1.0)
ARM_COLOR = (0.0, 1.0, 1.0)
WRIST_OFFSET_COLOR = (1.0, 1.0, 0.0)


class AnalyticalIKSolver:

    def __init__(self, chain: JointChain, debug: bool = False, log_level: str = "INFO"):
        """
        :param chain: 已校验的运动链
        :param debug: 为 True 时结果中附带调试线段
        :param log_level: "DEBUG", "INFO", "WARNING", "ERROR"
        """
        # 每个实例一个子 logger，级别互不影响；输出处理器挂在共享的父 logger 上，
        # 宿主已配置 root logging 时不再添加
        class_logger = logging.getLogger(f"{__name__}.AnalyticalIKSolver")
        if not class_logger.handlers and not logging.getLogger().handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
            class_logger.addHandler(handler)
        self.logger = class_logger.getChild(f"{id(self):x}")
        self.logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        if not chain.supports_single_dof():
            raise ConfigurationError("IK solver supports only single DOF joints")

        self.chain = chain
        self.debug = debug
        # 默认状态模板，只被 copy()，从不修改
        self._rest_state = KinematicState(chain)
        self.geometry: ArmGeometry = build_arm_geometry(chain, self._rest_state)
        self.propagator = MimicPropagator(chain)

        self.logger.info("Initializing with base %s and tip %s", chain.base_link, chain.tip_link)
        self.logger.info(
            "Upper arm %g, forearm %g, wrist offset %g, reach [%g, %g]",
            self.geometry.upper_arm_length,
            self.geometry.forearm_length,
            self.geometry.wrist_offset_length,
            self.geometry.reach_min,
            self.geometry.reach_max)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    @property
    def joint_names(self) -> List[str]:
        return self.chain.joint_names

    @property
    def link_names(self) -> List[str]:
        return self.chain.link_names

    @property
    def tip_frames(self) -> List[str]:
        return list(self.chain.tip_frames)

    @property
    def base_link(self) -> str:
        return self.chain.base_link

    @property
    def reachable_range(self) -> Tuple[float, float]:
        return self.geometry.reach_min, self.geometry.reach_max

    def set_log_level(self, level: str):
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    def get_position_fk(self, joint_positions: Sequence[float],
                        link_names: Optional[List[str]] = None) -> List[np.ndarray]:
        """
        正向运动学

        :param joint_positions: 关节状态向量（长度等于关节数）
        :param link_names: 需要的连杆，None 表示末端
        :return: 各连杆的 4x4 全局变换
        """
        state = self._rest_state.copy()
        state.set_joint_positions(joint_positions)
        return [state.global_link_transform(link) for link in (link_names or [self.chain.tip_link])]

    # ------------------------------------------------------------------
    # 求解
    # ------------------------------------------------------------------

    def solve(self, target: TargetLike, seed_state: Sequence[float],
              callback: Optional[SolutionCallback] = None,
              options: Optional[QueryOptions] = None) -> IKResult:
        """
        求解单个目标

        :param target: TargetPose、4x4 变换矩阵或 3 维位置（世界/基座坐标系）
        :param seed_state: 种子关节状态向量，长度必须等于关节数
        :param callback: 求解完成后以 (target, solution, error_code) 调用
        :param options: 查询选项（算法不使用）
        :return: IKResult，可解包为 (solution, error_code)
        """
        return self.search_position_ik([target], seed_state, callback=callback, options=options)

    def search_position_ik(self, poses: Sequence[TargetLike], seed_state: Sequence[float],
                           timeout: Optional[float] = None,
                           consistency_limits: Optional[Sequence[float]] = None,
                           callback: Optional[SolutionCallback] = None,
                           options: Optional[QueryOptions] = None) -> IKResult:
        """
        宿主插件形式的求解入口：poses 必须恰好包含一个目标。
        闭式解没有迭代，timeout 与 consistency_limits 被忽略。
        """
        solution = np.zeros(self.chain.joint_count, dtype=np.float64)

        seed = self._validate_seed_state(seed_state)
        target = self._validate_target(poses)
        if seed is None or target is None:
            return IKResult(solution, IKErrorCode.NO_IK_SOLUTION)

        state = self._rest_state.copy()
        state.set_joint_positions(seed)
        state.enforce_bounds()
        solution[:] = state.positions
        self.propagator.propagate_all(solution)
        state.set_joint_positions(solution)

        position = target.position
        self.logger.debug("IK target %s: %g, %g, %g",
                          self.chain.tip_link, position[0], position[1], position[2])

        chain = self.chain
        mount_state = self._set_joint_state(
            chain.mount, solve_mount_angle(self.geometry, position), state, solution)

        planar = solve_planar(self.geometry, arm_plane_target(self.geometry, position, mount_state))
        if planar.reach == ReachStatus.BEYOND_MAX:
            self.logger.debug("Target distance %g beyond reach %g, extending arm",
                              planar.distance, self.geometry.reach_max)
            self._set_joint_limit_state(chain.shoulder, True, state, solution)
            self._set_joint_limit_state(chain.elbow, True, state, solution)
        elif planar.reach == ReachStatus.BELOW_MIN:
            self.logger.debug("Target distance %g below reach %g, retracting arm",
                              planar.distance, self.geometry.reach_min)
            self._set_joint_limit_state(chain.shoulder, False, state, solution)
            self._set_joint_limit_state(chain.elbow, False, state, solution)
        else:
            shoulder_angle, elbow_angle = self._select_branch(planar)
            self._set_joint_state(chain.shoulder, shoulder_angle, state, solution)
            self._set_joint_state(chain.elbow, elbow_angle, state, solution)

        if not chain.wrist.is_mimic:
            wrist_angle = solve_wrist_angle(
                self.geometry,
                planar.direction,
                state.get_joint_position(chain.shoulder),
                state.get_joint_position(chain.elbow))
            self._set_joint_state(chain.wrist, wrist_angle, state, solution)

        result = IKResult(solution, IKErrorCode.SUCCESS)
        if self.debug:
            result.debug_segments = self._debug_segments(position, state)

        if callback is not None:
            callback(target, solution, result.error_code)

        return result

    # ------------------------------------------------------------------
    # 内部方法
    # ------------------------------------------------------------------

    def _validate_seed_state(self, seed_state: Sequence[float]) -> Optional[np.ndarray]:
        try:
            seed = np.asarray(seed_state, dtype=np.float64)
        except (TypeError, ValueError):
            self.logger.error("Seed state is not a numeric vector")
            return None

        if seed.ndim != 1 or seed.shape[0] != self.chain.joint_count:
            self.logger.error(
                "Expected seed state for %d supported joints, received state for %d",
                self.chain.joint_count, seed.size)
            return None

        self.logger.debug("Received seed state for %d joints", seed.shape[0])
        for joint, value in zip(self.chain.variables, seed):
            self.logger.debug("\t%s (%s): %g", joint.name,
                              "mimic" if joint.is_mimic else "active", value)
        return seed

    def _validate_target(self, poses: Sequence[TargetLike]) -> Optional[TargetPose]:
        poses = list(poses)
        if len(poses) != 1 or len(self.chain.tip_frames) != len(poses):
            self.logger.error("Found %d tips and %d poses (expected one pose and one tip)",
                              len(self.chain.tip_frames), len(poses))
            return None
        try:
            return as_target_pose(poses[-1])
        except ValueError as e:
            self.logger.error("Invalid target pose: %s", e)
            return None

    def _select_branch(self, planar: PlanarSolution) -> Tuple[float, float]:
        """
        选择 shoulder/elbow 都落在限位内的分支，两者都可行时取 elbow-up；
        都不可行时退回 elbow-up，由 _set_joint_state 截断
        """
        for shoulder_angle, elbow_angle in planar.branches:
            shoulder_fit = self._fit_joint_angle(self.chain.shoulder, shoulder_angle)
            elbow_fit = self._fit_joint_angle(self.chain.elbow, elbow_angle)
            if shoulder_fit is not None and elbow_fit is not None:
                return shoulder_fit, elbow_fit

        self.logger.debug("No elbow branch within limits, clamping elbow-up solution")
        return planar.shoulder, planar.elbow

    def _fit_joint_angle(self, joint: SingleDofJoint, angle: float) -> Optional[float]:
        fitted = fit_angle_to_limits(angle, joint.limits)
        if fitted is None or not joint.is_mimic:
            return fitted
        # mimic 关节还要求反求出的主关节值在主关节限位内
        master = self.chain.get_joint(joint.mimic.joint)
        return fitted if master.limits.contains(joint.mimic.invert(fitted)) else None

    def _set_joint_state(self, joint: SingleDofJoint, angle: float,
                         state: KinematicState, solution: np.ndarray) -> float:
        """
        将角度截断到限位后写入解向量，并更新 mimic 关系

        NaN 角度保持当前值（种子值，已截断到限位）。
        joint 本身是 mimic 关节时，先反求主关节，再由主关节重新计算它的所有 mimic 关节。

        :return: joint 最终写入的值
        """
        limits = joint.limits
        if math.isnan(angle):
            joint_state = state.get_joint_position(joint)
        else:
            if joint.joint_type == JointType.REVOLUTE:
                fitted = fit_angle_to_limits(angle, limits)
                if fitted is not None:
                    angle = fitted
            joint_state = joint.clamp(angle)

        self.logger.debug("IK solution %s: %g [%g] min %g max %g",
                          joint.name, angle, joint_state,
                          limits.min_position, limits.max_position)

        if joint.is_mimic:
            master, master_state = self.propagator.resolve_master(joint, joint_state)
            solution[self.chain.joint_index[master.name]] = master_state
            self.propagator.propagate(master, master_state, solution)
        else:
            solution[self.chain.joint_index[joint.name]] = joint_state
            self.propagator.propagate(joint, joint_state, solution)

        state.set_joint_positions(solution)
        return state.get_joint_position(joint)

    def _set_joint_limit_state(self, joint: SingleDofJoint, use_max: bool,
                               state: KinematicState, solution: np.ndarray) -> float:
        limit = joint.limits.max_position if use_max else joint.limits.min_position
        return self._set_joint_state(joint, limit, state, solution)

    def _debug_segments(self, target: np.ndarray, state: KinematicState) -> List[DebugSegment]:
        chain = self.chain

        def origin(link: str) -> np.ndarray:
            return state.global_link_transform(link)[:3, 3]

        shoulder = origin(chain.shoulder.child_link)
        elbow = origin(chain.elbow.child_link)
        wrist = origin(chain.wrist.child_link)
        tip = origin(chain.tip_link)
        return [
            DebugSegment(shoulder, np.array(target, dtype=np.float64), TARGET_RAY_COLOR, 'target_ray'),
            DebugSegment(shoulder, elbow, ARM_COLOR, 'upper_arm'),
            DebugSegment(elbow, wrist, ARM_COLOR, 'forearm'),
            DebugSegment(wrist, tip, WRIST_OFFSET_COLOR, 'wrist_offset'),
        ]


def create_solver(description: Union[ChainDescription, JointChain, str],
                  debug: bool = False, log_level: str = "INFO") -> AnalyticalIKSolver:
    """
    工厂函数：由链描述（对象或 JSON 文件路径）构建求解器

    :raises ConfigurationError: 链配置非法，求解器拒绝激活
    """
    if isinstance(description, JointChain):
        chain = description
    elif isinstance(description, ChainDescription):
        chain = JointChain(description)
    else:
        from ik_solver.data_io import load_chain
        chain = load_chain(description)
    return AnalyticalIKSolver(chain, debug=debug, log_level=log_level)
