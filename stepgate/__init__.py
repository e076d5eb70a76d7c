"""
stepgate - a gated plan/approve/execute protocol for task-execution agents.

A task is analysed into a plan, the plan is approved by a human, and the
plan's subtasks are executed one at a time with a decision gate after each.
"""

__version__ = "0.3.0"
