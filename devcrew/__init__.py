"""
devcrew: multi-agent orchestration for turning a software request into code.

Agents defined by JSON files talk over an in-process message bus, call a
chat/tool-completion API and route their answers to each other or back to
the user.
"""

__version__ = "0.1.0"

from .runtime import Runtime, create_runtime
from .config import RuntimeConfig

__all__ = ["Runtime", "RuntimeConfig", "create_runtime", "__version__"]
