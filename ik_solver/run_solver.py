import json
import os
import sys
import time
import numpy as np

from ik_solver.exceptions import ConfigurationError
from ik_solver.model import KinematicState
from ik_solver.solver import AnalyticalIKSolver, IKErrorCode, compute_error_vector, create_solver
from ik_solver.data_io import (
    export_solutions,
    interpolate_joint_states,
    interpolate_targets,
    load_chain,
    load_targets
)


def run_solver(config_path="config.json") -> bool:
    # 1. 加载配置
    if not os.path.exists(config_path):
        print(f"❌ 找不到配置文件: {config_path}")
        return False

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    print("----------- IK Solver Headless -----------")
    print(f"配置加载: {config_path}")

    # 相对路径按配置文件所在目录解析
    base_dir = os.path.dirname(os.path.abspath(config_path))

    def resolve(path):
        return path if os.path.isabs(path) else os.path.join(base_dir, path)

    chain_path = resolve(config.get('chain_path', 'chain.json'))
    targets_path = resolve(config.get('targets_path', 'targets.json'))
    output_path = resolve(config.get('output_path', 'solution.json'))
    solve_mode = config.get('solve_mode', 1)  # 默认模式2 (逐帧)

    # 2. 加载运动链并创建求解器
    print(f"正在加载运动链: {chain_path} ...")
    try:
        chain = load_chain(chain_path)
        solver = create_solver(chain,
                               debug=config.get('debug', False),
                               log_level=config.get('log_level', 'INFO'))
    except (OSError, KeyError, ValueError) as e:
        # ConfigurationError 是 ValueError 的子类
        kind = "配置非法" if isinstance(e, ConfigurationError) else "加载失败"
        print(f"❌ 运动链{kind}: {e}")
        return False
    print(f"末端执行器: {chain.tip_link}，关节数 {chain.joint_count}")
    reach_min, reach_max = solver.reachable_range
    print(f"可达范围: [{reach_min:.4f}, {reach_max:.4f}]")

    # 3. 加载目标轨迹
    print(f"正在加载目标轨迹: {targets_path} ...")
    try:
        keyframes = load_targets(targets_path)
        total_frames = keyframes[-1]['frame']
        print(f"轨迹加载成功，共 {len(keyframes)} 个关键帧，总长 {total_frames} 帧")
    except (OSError, KeyError, ValueError) as e:
        print(f"❌ 目标轨迹加载失败: {e}")
        return False

    # 4. 开始求解
    start_time = time.time()
    seed = KinematicState(chain).positions

    if solve_mode == 0:
        print(">>> 模式 1: 关键帧求解 + 关节插值")
        solved_frames = solve_mode_1(solver, keyframes, total_frames, seed)
    else:
        print(">>> 模式 2: 目标插值 + 逐帧求解")
        solved_frames = solve_mode_2(solver, keyframes, total_frames, seed)

    duration = time.time() - start_time
    print(f"求解完成，耗时: {duration:.2f} 秒")
    report_error(solver, keyframes, solved_frames)

    # 5. 导出结果
    print(f"正在导出到: {output_path} ...")
    export_solutions(chain, solved_frames, output_path)
    print("✅ 任务完成！")
    return True


def solve_frame(solver: AnalyticalIKSolver, frame: int, target_transform: np.ndarray,
                seed: np.ndarray) -> dict:
    solution, error_code = solver.solve(target_transform, seed)
    return {
        'frame': frame,
        'error_code': error_code,
        'positions': solution.copy()
    }


def solve_mode_2(solver, keyframes, total_frames, seed):
    """模式2：逐帧求解，上一帧的解作为下一帧的种子"""
    solved_frames = []

    for frame in range(total_frames + 1):
        if frame % 10 == 0:
            sys.stdout.write(f"\r进度: {frame}/{total_frames}")
            sys.stdout.flush()

        frame_data = solve_frame(solver, frame, interpolate_targets(keyframes, frame), seed)
        if frame_data['error_code'] == IKErrorCode.SUCCESS:
            seed = frame_data['positions']
        solved_frames.append(frame_data)

    print()  # 换行
    return solved_frames


def solve_mode_1(solver, keyframes, total_frames, seed):
    """模式1：关键帧求解 + 插值"""
    keyframe_results = {}
    keyframe_indices = [kf['frame'] for kf in keyframes]

    # 1. 求解关键帧（Warm start: 上一关键帧的解作为种子）
    for kf in keyframes:
        frame = kf['frame']
        sys.stdout.write(f"\r正在求解关键帧: {frame}")
        sys.stdout.flush()

        frame_data = solve_frame(solver, frame, interpolate_targets(keyframes, frame), seed)
        if frame_data['error_code'] == IKErrorCode.SUCCESS:
            seed = frame_data['positions']
        keyframe_results[frame] = frame_data

    print("\n正在进行插值...")

    # 2. 插值中间帧
    solved_frames = []
    for frame in range(total_frames + 1):
        start_kf_frame = keyframe_indices[0]
        end_kf_frame = keyframe_indices[-1]

        if frame <= start_kf_frame:
            frame_data = dict(keyframe_results[start_kf_frame], frame=frame)
        elif frame >= end_kf_frame:
            frame_data = dict(keyframe_results[end_kf_frame], frame=frame)
        else:
            for i in range(len(keyframe_indices) - 1):
                if keyframe_indices[i] <= frame < keyframe_indices[i + 1]:
                    start_kf_frame = keyframe_indices[i]
                    end_kf_frame = keyframe_indices[i + 1]
                    break

            frame_data = interpolate_joint_states(
                keyframe_results[start_kf_frame],
                keyframe_results[end_kf_frame],
                frame
            )

        solved_frames.append(frame_data)

    return solved_frames


def report_error(solver, keyframes, solved_frames):
    """打印末端位置误差统计（姿态不参与求解，不统计）"""
    errors = []
    for frame_data in solved_frames:
        current = solver.get_position_fk(frame_data['positions'])[0]
        target = interpolate_targets(keyframes, frame_data['frame'])
        errors.append(np.linalg.norm(compute_error_vector(current, target)[:3]))
    failed = sum(1 for frame_data in solved_frames
                 if frame_data['error_code'] != IKErrorCode.SUCCESS)
    if errors:
        print(f"位置误差: 平均 {np.mean(errors):.4f} m，最大 {np.max(errors):.4f} m，失败帧 {failed}")


def main():
    ok = run_solver(sys.argv[1] if len(sys.argv) > 1 else "config.json")
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
