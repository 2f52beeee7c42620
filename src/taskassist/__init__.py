"""
taskassist — conversational code-generation orchestrator.

taskassist drives a multi-turn conversation between a user and a remote
code-generation agent. A Session is bootstrapped once, then every user
message packages the workspace, uploads it, and submits a code-generation
job. Completed jobs are turned into a reviewable change set of new and
deleted files, with acceptance bookkeeping for telemetry.

Package layout (src/taskassist/):
  core/       — constants, exceptions, config, logging, cancellation, telemetry
  session/    — state machine, session, session manager, change-set builder, diff metrics
  clients/    — remote agent client contract and httpx implementation
  workspace/  — workspace packaging, upload, cleanup and change-set apply
  cli/        — Click CLI entry point
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
