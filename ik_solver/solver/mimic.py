"""
Mimic 关节传播

只传播一层：主关节 -> 直接 mimic 它的关节。mimic 套 mimic 在 JointChain 构建时已被拒绝。
"""
import logging
import numpy as np
from typing import List, Tuple

from ik_solver.model import JointChain, SingleDofJoint

logger = logging.getLogger(__name__)


class MimicPropagator:

    def __init__(self, chain: JointChain):
        self.chain = chain

    def propagate(self, master: SingleDofJoint, master_state: float,
                  state_vector: np.ndarray) -> List[SingleDofJoint]:
        """
        slave_state = clamp(factor * master_state + offset, slave 限位)，写入 state_vector

        :param master: 主关节
        :param master_state: 主关节的解
        :param state_vector: 关节状态向量（原地修改）
        :return: 被更新的 mimic 关节
        """
        updated = []
        for slave in self.chain.mimic_targets.get(master.name, []):
            slave_state = slave.clamp(slave.mimic.apply(master_state))
            state_vector[self.chain.joint_index[slave.name]] = slave_state
            logger.debug("Updating mimic %s: %g from %s %g",
                         slave.name, slave_state, master.name, master_state)
            updated.append(slave)
        return updated

    def resolve_master(self, slave: SingleDofJoint,
                       slave_state: float) -> Tuple[SingleDofJoint, float]:
        """
        由 mimic 关节的解反求主关节：clamp((slave_state - offset) / factor, 主关节限位)
        """
        master = self.chain.get_joint(slave.mimic.joint)
        return master, master.clamp(slave.mimic.invert(slave_state))

    def propagate_all(self, state_vector: np.ndarray):
        """对所有主关节按当前值传播一次"""
        for master_name in self.chain.mimic_targets:
            master = self.chain.get_joint(master_name)
            self.propagate(master, float(state_vector[self.chain.joint_index[master_name]]),
                           state_vector)
