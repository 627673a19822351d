"""
Execution engine package.
"""

from .command import Command
from .future import Future
from .pool import CommandPhase, Pool
from .result import ExecutionResult

__all__ = ["Command", "CommandPhase", "ExecutionResult", "Future", "Pool"]
