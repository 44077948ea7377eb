"""
Task Management Tools

Tools that hand work to other agents over the message bus.

- distribute_coding_tasks: order a task list by file dependencies and send
  one ``coding_request`` per batch to the coding agent
- forward_to_agent: send a ``task_request`` to a named agent
"""

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .base import BaseTool, ToolRegistry
from ..runtime.message_bus import MessageBus
from ..runtime.types import Message, MessageType
from ..utils.logger import get_logger

logger = get_logger(__name__)


TASK_MANAGER = "TaskManager"
DEFAULT_CODING_AGENT = "CodingAgent"


@dataclass
class TaskDefinition:
    """One file to be written by the coding agent"""

    file_name: str
    task_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    project_name: str = ""
    file_path: str = ""
    function: str = ""
    dependencies: List[str] = field(default_factory=list)
    requirements: str = ""
    estimated_complexity: str = "medium"
    technology_requirements: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskDefinition":
        if not isinstance(data, dict) or not data.get("file_name"):
            raise ValueError("Each task needs a 'file_name'")
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        return cls(**known)


def parse_tasks(tasks: Union[str, List[Any], Dict[str, Any]]) -> List[TaskDefinition]:
    """Accepts a JSON string, a ``{"tasks": [...]}`` object or a bare list."""
    if isinstance(tasks, str):
        try:
            tasks = json.loads(tasks)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid task JSON: {e}") from e
    if isinstance(tasks, dict):
        tasks = tasks.get("tasks") or []
    if not isinstance(tasks, list):
        raise ValueError("Tasks must be a list")
    return [TaskDefinition.from_dict(t) for t in tasks]


def order_by_dependency(tasks: List[TaskDefinition]) -> List[TaskDefinition]:
    """
    Topological order: a task comes after the tasks whose ``file_name`` it
    depends on. Unknown dependencies are ignored.

    Raises:
        ValueError: on a dependency cycle
    """
    by_file = {t.file_name: t for t in tasks}
    ordered: List[TaskDefinition] = []
    visited = set()
    in_progress = set()

    def visit(task: TaskDefinition) -> None:
        if task.task_id in visited:
            return
        if task.task_id in in_progress:
            raise ValueError(f"Circular dependency involving '{task.file_name}'")
        in_progress.add(task.task_id)
        for dependency in task.dependencies:
            dep = by_file.get(dependency)
            if dep is not None:
                visit(dep)
        in_progress.discard(task.task_id)
        visited.add(task.task_id)
        ordered.append(task)

    for task in tasks:
        visit(task)
    return ordered


def make_batches(tasks: List[TaskDefinition], batch_size: int = 1) -> List[List[TaskDefinition]]:
    return [tasks[i:i + batch_size] for i in range(0, len(tasks), batch_size)]


class DistributeCodingTasksTool(BaseTool):
    """Split a task list into batches for the coding agent."""

    name = "distribute_coding_tasks"
    description = """Send a list of file-creation tasks to the coding agent.
    Tasks are ordered so that a file is written after the files it depends on,
    then dispatched one batch at a time."""

    def __init__(self, bus: MessageBus, coding_agent: str = DEFAULT_CODING_AGENT, batch_size: int = 1):
        self.bus = bus
        self.coding_agent = coding_agent
        self.batch_size = batch_size

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "tasks": {
                    "type": "array",
                    "description": "Tasks to distribute.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "task_id": {"type": "string"},
                            "project_name": {"type": "string"},
                            "file_name": {"type": "string"},
                            "file_path": {"type": "string"},
                            "function": {"type": "string"},
                            "dependencies": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "file_name of tasks this one depends on",
                            },
                            "requirements": {"type": "string"},
                            "estimated_complexity": {"type": "string", "enum": ["low", "medium", "high"]},
                            "technology_requirements": {"type": "array", "items": {"type": "string"}},
                        },
                        "required": ["file_name"],
                    },
                },
            },
            "required": ["tasks"],
        }

    async def execute(
        self,
        tasks: Any = None,
        SessionId: Optional[str] = None,
        Sender: Optional[str] = None,
        **_: Any,
    ) -> Dict[str, Any]:
        try:
            parsed = parse_tasks(tasks if tasks is not None else [])
            if not parsed:
                return {"success": False, "error": "EMPTY_TASK_LIST", "message": "Task list is empty."}
            ordered = order_by_dependency(parsed)
        except (TypeError, ValueError) as e:
            return {"success": False, "error": "INVALID_TASKS", "message": str(e)}

        dispatched = []
        for batch in make_batches(ordered, self.batch_size):
            metadata: Dict[str, Any] = {"BatchSize": len(batch)}
            if SessionId:
                metadata["SessionId"] = SessionId
            if Sender:
                metadata["OriginalSender"] = Sender
            message = Message(
                sender=TASK_MANAGER,
                recipient=self.coding_agent,
                content=json.dumps([asdict(t) for t in batch], ensure_ascii=False, indent=2),
                type=MessageType.CODING_REQUEST,
                metadata=metadata,
            )
            await self.bus.publish(message)
            dispatched.append({
                "batch_id": str(uuid.uuid4()),
                "message_id": message.id,
                "files": [t.file_name for t in batch],
                "timestamp": datetime.now().isoformat(),
                "status": "dispatched",
            })

        logger.info(
            "Coding tasks distributed",
            tasks=len(ordered),
            batches=len(dispatched),
            coding_agent=self.coding_agent,
        )
        return {
            "success": True,
            "task_count": len(ordered),
            "order": [t.file_name for t in ordered],
            "batches": dispatched,
        }


class ForwardToAgentTool(BaseTool):
    """Forward content to a named agent."""

    name = "forward_to_agent"
    description = """Forward a request to another agent by name."""

    def __init__(self, bus: MessageBus):
        self.bus = bus

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "agent_name": {
                    "type": "string",
                    "description": "Name of the receiving agent.",
                },
                "to_agent_content": {
                    "type": "string",
                    "description": "Content to send.",
                },
            },
            "required": ["agent_name", "to_agent_content"],
        }

    async def execute(
        self,
        agent_name: str = "",
        to_agent_content: str = "",
        SessionId: Optional[str] = None,
        Sender: Optional[str] = None,
        **_: Any,
    ) -> Dict[str, Any]:
        if not agent_name or not to_agent_content:
            return {"success": False, "error": "agent_name and to_agent_content are required"}

        metadata: Dict[str, Any] = {}
        if SessionId:
            metadata["SessionId"] = SessionId
        if Sender:
            metadata["OriginalSender"] = Sender

        delivered = await self.bus.publish(
            Message(
                sender=TASK_MANAGER,
                recipient=agent_name,
                content=to_agent_content,
                type=MessageType.TASK_REQUEST,
                metadata=metadata,
            )
        )
        logger.info("Forwarded to agent", agent_name=agent_name, delivered=delivered)
        return {"success": True, "agent_name": agent_name, "delivered": delivered > 0}


class TaskTools:
    """Container for task management tools."""

    @staticmethod
    def register_all(registry: ToolRegistry, bus: MessageBus, coding_agent: str = DEFAULT_CODING_AGENT) -> None:
        """Register all task tools under the TaskManager service."""
        registry.register_tool(DistributeCodingTasksTool(bus, coding_agent), "TaskManager")
        registry.register_tool(ForwardToAgentTool(bus), "TaskManager")
