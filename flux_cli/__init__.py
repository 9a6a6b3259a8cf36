"""
Flux CLI - inspect and maintain a project's Signal log

Commands:
- flux log tail/inspect - Signal log operations
- flux state - Current derived state
- flux checkpoint create/list/verify - Checkpoint management
- flux diff - Changes since a checkpoint or Signal
- flux replay - Dry-run or drift-check a Signal sequence
"""

__version__ = "0.1.0"
