"""
异常定义
"""


class ConfigurationError(ValueError):
    """
    运动链配置错误。

    链拓扑非法、关节数量不符、缺少 mount/shoulder/elbow/wrist 关节、
    mimic 关系非法（主关节缺失、mimic 套 mimic）等情况在初始化阶段抛出，
    求解器拒绝激活，不会对错误的链静默求解。
    """
