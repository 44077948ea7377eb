"""
devcrew tools

Tools are grouped by service name; agent configurations list the services
they may use.
"""

from .base import BaseTool, FunctionTool, ToolExecutor, ToolRegistry
from .file_tools import FileTools, ProjectRoot
from .task_tools import TaskTools

__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolExecutor",
    "ToolRegistry",
    "FileTools",
    "ProjectRoot",
    "TaskTools",
]
