from __future__ import annotations
import argparse
import json
import logging
import os
from dataclasses import asdict
from typing import List, Optional

from crawler_rl.config import CrawlerSettings, load_settings
from crawler_rl.envs import CrawlerEnv
from crawler_rl.policies import make_policy
from crawler_rl.render import record_episode
from crawler_rl.rollout import EpisodeStats, evaluate, summarize
from crawler_rl.utils import seed_everything, to_jsonable

log = logging.getLogger("crawler_rl.evaluate")


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(description="Crawler: run policies in the walk-to-target task.")
    p.add_argument("--out", type=str, default="runs/crawler_eval")
    p.add_argument("--config", type=str, default=None, help="JSON settings overlay (sections: agent, joint_drive, body, physics, render).")

    # Policy
    p.add_argument("--policy", type=str, default="gait", choices=["zero", "random", "gait", "torchscript"])
    p.add_argument("--checkpoint", type=str, default=None, help="TorchScript actor for --policy torchscript.")
    p.add_argument("--device", type=str, default="cpu")

    # Episodes
    p.add_argument("--episodes", type=int, default=3)
    p.add_argument("--max-decisions", type=int, default=None)
    p.add_argument("--seed", type=int, default=0)

    # Reward functions / target (override config)
    p.add_argument("--no-reward-moving", action="store_true")
    p.add_argument("--no-reward-facing", action="store_true")
    p.add_argument("--time-penalty", action="store_true")
    p.add_argument("--no-detect-targets", action="store_true")
    p.add_argument("--no-respawn-target", action="store_true")
    p.add_argument("--target-spawn-radius", type=float, default=None)
    p.add_argument("--max-step", type=int, default=None)

    # Video
    p.add_argument("--video", type=str, default=None, help="Write one extra episode to this .mp4 file.")
    p.add_argument("--seconds", type=float, default=10.0)
    p.add_argument("--fps", type=int, default=None)
    p.add_argument("--foot-vis", action="store_true", help="Colour feet by grounded state.")

    p.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p.parse_args(argv)


def build_settings(args) -> CrawlerSettings:
    settings = load_settings(args.config) if args.config else CrawlerSettings()
    a = settings.agent
    if args.no_reward_moving:
        a.reward_moving_towards_target = False
    if args.no_reward_facing:
        a.reward_facing_target = False
    if args.time_penalty:
        a.reward_use_time_penalty = True
    if args.no_detect_targets:
        a.detect_targets = False
    if args.no_respawn_target:
        a.respawn_target_when_touched = False
    if args.target_spawn_radius is not None:
        a.target_spawn_radius = float(args.target_spawn_radius)
    if args.max_step is not None:
        a.max_step = int(args.max_step)
    if args.foot_vis:
        a.use_foot_grounded_visualization = True
    return settings


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if args.policy == "torchscript" and args.checkpoint is None:
        raise SystemExit("--policy torchscript requires --checkpoint")
    if args.episodes < 1:
        raise SystemExit("--episodes must be >= 1")

    seed_everything(args.seed)
    settings = build_settings(args)
    env = CrawlerEnv(settings=settings, seed=args.seed)
    policy = make_policy(
        args.policy,
        seed=args.seed,
        checkpoint=args.checkpoint,
        device=args.device,
        decision_dt=env.decision_dt,
    )

    # write config
    os.makedirs(args.out, exist_ok=True)
    with open(os.path.join(args.out, "run_config.json"), "w", encoding="utf-8") as f:
        json.dump(to_jsonable({
            "policy": args.policy,
            "checkpoint": args.checkpoint,
            "episodes": int(args.episodes),
            "max_decisions": args.max_decisions,
            "seed": int(args.seed),
            "settings": settings.to_dict(),
        }), f, ensure_ascii=False, indent=2)

    episodes_path = os.path.join(args.out, "episodes.jsonl")
    with open(episodes_path, "w", encoding="utf-8") as ep_file:

        def on_episode(ep: int, stats: EpisodeStats) -> None:
            row = to_jsonable({"episode": ep, **asdict(stats)})
            line = json.dumps(row, ensure_ascii=False)
            ep_file.write(line + "\n")
            log.info(line)

        results = evaluate(
            env,
            policy,
            episodes=int(args.episodes),
            max_decisions=args.max_decisions,
            seed=int(args.seed),
            on_episode=on_episode,
        )

    summary = summarize(results)
    with open(os.path.join(args.out, "summary.json"), "w", encoding="utf-8") as f:
        json.dump(summary, f, ensure_ascii=False, indent=2)
    log.info(json.dumps({"summary": summary}, ensure_ascii=False))

    if args.video is not None:
        stats = record_episode(
            env,
            policy,
            out_path=args.video,
            seconds=float(args.seconds),
            fps=args.fps,
            seed=int(args.seed) + int(args.episodes),
        )
        log.info(json.dumps({"video": args.video, **stats}, ensure_ascii=False))

    return summary


if __name__ == "__main__":
    main()
