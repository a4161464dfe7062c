from .protocol import TaskHandler
from .engine import ExecutionEngine

__all__ = ["TaskHandler", "ExecutionEngine"]
