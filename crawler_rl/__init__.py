"""Crawler locomotion RL environment.

This package provides:
- A lightweight surrogate model of a four-legged crawler (box body, 4 x 2 leg segments,
  strength-limited PD joint drives, penalty ground contact).
- The crawler agent: observation vector, joint actions and a shaped walk-to-target reward.
- `CrawlerEnv` (reset/step) and a Gymnasium wrapper for external RL runtimes.
- Baseline policies, episode evaluation and matplotlib/MP4 rendering.

Coordinate convention:
  x: forward
  y: left
  z: up
"""
