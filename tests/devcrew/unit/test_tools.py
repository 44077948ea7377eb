"""
Unit tests for the tool registry, file tools and task tools
"""

import json
import os

import pytest

from devcrew.runtime.types import MessageType
from devcrew.tools.base import ToolRegistry
from devcrew.tools.file_tools import MAX_READ_BYTES, FileTools, ProjectRoot
from devcrew.tools.task_tools import (
    DistributeCodingTasksTool,
    ForwardToAgentTool,
    TaskDefinition,
    TaskTools,
    make_batches,
    order_by_dependency,
    parse_tasks,
)


# ============================================
# Registry
# ============================================


def test_registry_groups_tools_by_service(registry):
    assert registry.list_tools() == ["echo", "explode"]
    assert registry.list_services() == ["Echo", "Broken"]
    assert registry.tool_names_for_service("Echo") == ["echo"]
    assert registry.tool_names_for_service("Missing") == []


def test_registry_renders_schemas(registry):
    function_tools = registry.function_schemas(["Echo", "Missing"])
    assert function_tools == [
        {
            "type": "function",
            "function": {
                "name": "echo",
                "description": "Echo text back",
                "parameters": {"type": "object", "properties": {"text": {"type": "string"}}},
            },
        }
    ]

    claude_tools = registry.claude_schemas(["Echo", "Broken"])
    assert [t["name"] for t in claude_tools] == ["echo", "explode"]
    assert claude_tools[0]["input_schema"]["properties"]["text"] == {"type": "string"}


def test_tool_shared_between_services_is_rendered_once(tmp_path):
    registry = ToolRegistry()
    FileTools.register_all(registry, str(tmp_path))

    names = [t["function"]["name"] for t in registry.function_schemas(["FileSystem", "FileRead"])]

    assert names == ["list_files", "read_file"]


@pytest.mark.asyncio
async def test_registry_execute(registry):
    assert await registry.execute("echo", {"text": "hi"}) == {"echo": "hi"}

    with pytest.raises(ValueError, match="Unknown tool: nope"):
        await registry.execute("nope", {})

    with pytest.raises(RuntimeError, match="boom"):
        await registry.execute("explode", {})


# ============================================
# File tools
# ============================================


@pytest.fixture
def file_registry(tmp_path):
    registry = ToolRegistry()
    FileTools.register_all(registry, str(tmp_path))
    return registry


def test_file_services(file_registry):
    assert file_registry.tool_names_for_service("FileSystem") == ["list_files"]
    assert file_registry.tool_names_for_service("FileRead") == ["list_files", "read_file"]
    assert file_registry.tool_names_for_service("FileCreate") == ["create_file", "write_file", "delete_file"]


def test_project_root_rejects_escapes(tmp_path):
    project = ProjectRoot(str(tmp_path))

    assert project.resolve("src/main.py") == os.path.join(os.path.realpath(str(tmp_path)), "src", "main.py")
    assert project.resolve("") == os.path.realpath(str(tmp_path))
    with pytest.raises(ValueError):
        project.resolve("../outside.txt")
    with pytest.raises(ValueError):
        project.resolve("/etc/passwd")


@pytest.mark.asyncio
async def test_create_read_write_delete(file_registry, tmp_path):
    created = await file_registry.execute("create_file", {"path": "src/main.py", "content": "print('hi')\n"})
    assert created["success"]
    assert (tmp_path / "src" / "main.py").read_text(encoding="utf-8") == "print('hi')\n"

    again = await file_registry.execute("create_file", {"path": "src/main.py", "content": ""})
    assert not again["success"]
    assert "already exists" in again["error"]

    written = await file_registry.execute("write_file", {"path": "src/main.py", "content": "pass\n"})
    assert written == {"success": True, "path": "src/main.py", "replaced": True}

    read = await file_registry.execute("read_file", {"path": "src/main.py", "SessionId": "s1"})
    assert read["content"] == "pass\n"
    assert read["truncated"] is False

    deleted = await file_registry.execute("delete_file", {"path": "src/main.py"})
    assert deleted["success"]
    assert not (tmp_path / "src" / "main.py").exists()

    missing = await file_registry.execute("read_file", {"path": "src/main.py"})
    assert not missing["success"]


@pytest.mark.asyncio
async def test_read_file_truncates_large_files(file_registry, tmp_path):
    (tmp_path / "big.txt").write_text("a" * (MAX_READ_BYTES + 10), encoding="utf-8")

    read = await file_registry.execute("read_file", {"path": "big.txt"})

    assert read["truncated"] is True
    assert len(read["content"]) == MAX_READ_BYTES


@pytest.mark.asyncio
async def test_list_files(file_registry, tmp_path):
    (tmp_path / "pkg" / "sub").mkdir(parents=True)
    (tmp_path / "pkg" / "a.py").write_text("", encoding="utf-8")
    (tmp_path / "pkg" / "sub" / "b.py").write_text("", encoding="utf-8")
    (tmp_path / "README.md").write_text("", encoding="utf-8")

    everything = await file_registry.execute("list_files", {})
    assert everything["files"] == ["README.md", "pkg/a.py", "pkg/sub/b.py"]
    assert everything["directories"] == ["pkg", "pkg/sub"]

    shallow = await file_registry.execute("list_files", {"path": "pkg", "recursive": False})
    assert shallow["files"] == ["pkg/a.py"]
    assert shallow["directories"] == ["pkg/sub"]

    missing = await file_registry.execute("list_files", {"path": "nope"})
    assert not missing["success"]


@pytest.mark.asyncio
async def test_file_tools_refuse_paths_outside_root(file_registry):
    with pytest.raises(ValueError, match="escapes project root"):
        await file_registry.execute("write_file", {"path": "../evil.py", "content": "x"})


# ============================================
# Task tools
# ============================================


TASKS = [
    {"file_name": "main.py", "dependencies": ["models.py", "utils.py"], "requirements": "entry point"},
    {"file_name": "models.py", "dependencies": ["utils.py"]},
    {"file_name": "utils.py", "dependencies": ["os"]},
]


def test_parse_tasks_accepts_string_object_and_list():
    assert [t.file_name for t in parse_tasks(json.dumps(TASKS))] == ["main.py", "models.py", "utils.py"]
    assert len(parse_tasks({"tasks": TASKS})) == 3
    assert parse_tasks([]) == []

    with pytest.raises(ValueError):
        parse_tasks("{not json")
    with pytest.raises(ValueError):
        parse_tasks([{"requirements": "no file name"}])
    with pytest.raises(ValueError):
        parse_tasks(42)


def test_task_definition_ignores_unknown_fields():
    task = TaskDefinition.from_dict({"file_name": "a.py", "owner": "someone", "dependencies": None})
    assert task.file_name == "a.py"
    assert task.dependencies == []
    assert task.task_id


def test_order_by_dependency():
    ordered = order_by_dependency(parse_tasks(TASKS))
    assert [t.file_name for t in ordered] == ["utils.py", "models.py", "main.py"]


def test_order_by_dependency_detects_cycles():
    tasks = parse_tasks([
        {"file_name": "a.py", "dependencies": ["b.py"]},
        {"file_name": "b.py", "dependencies": ["a.py"]},
    ])
    with pytest.raises(ValueError, match="Circular dependency"):
        order_by_dependency(tasks)


def test_make_batches():
    tasks = parse_tasks(TASKS)
    assert [len(b) for b in make_batches(tasks, 2)] == [2, 1]
    assert make_batches([], 3) == []


@pytest.mark.asyncio
async def test_distribute_coding_tasks_publishes_in_dependency_order(bus):
    coder = bus.subscribe("CodingAgent")
    tool = DistributeCodingTasksTool(bus)

    result = await tool.execute(tasks=TASKS, SessionId="s1", Sender="Designer")

    assert result["success"]
    assert result["task_count"] == 3
    assert result["order"] == ["utils.py", "models.py", "main.py"]
    assert [b["files"] for b in result["batches"]] == [["utils.py"], ["models.py"], ["main.py"]]

    messages = [await coder.get() for _ in range(3)]
    assert all(m.type == MessageType.CODING_REQUEST for m in messages)
    assert all(m.sender == "TaskManager" for m in messages)
    assert messages[0].metadata == {"BatchSize": 1, "SessionId": "s1", "OriginalSender": "Designer"}
    assert json.loads(messages[2].content)[0]["file_name"] == "main.py"


@pytest.mark.asyncio
async def test_distribute_coding_tasks_without_sender(bus):
    coder = bus.subscribe("CodingAgent")

    await DistributeCodingTasksTool(bus).execute(tasks=TASKS[2:])

    assert (await coder.get()).metadata == {"BatchSize": 1}


@pytest.mark.asyncio
async def test_distribute_coding_tasks_rejects_bad_input(bus):
    tool = DistributeCodingTasksTool(bus)

    assert (await tool.execute(tasks=[]))["error"] == "EMPTY_TASK_LIST"
    assert (await tool.execute())["error"] == "EMPTY_TASK_LIST"
    assert (await tool.execute(tasks="[oops"))["error"] == "INVALID_TASKS"
    cycle = [{"file_name": "a.py", "dependencies": ["a.py"]}]
    assert (await tool.execute(tasks=cycle))["error"] == "INVALID_TASKS"


@pytest.mark.asyncio
async def test_forward_to_agent(bus):
    designer = bus.subscribe("Designer")
    tool = ForwardToAgentTool(bus)

    result = await tool.execute(agent_name="Designer", to_agent_content="design notes", SessionId="s1", Sender="User")
    assert result == {"success": True, "agent_name": "Designer", "delivered": True}

    message = await designer.get()
    assert message.type == MessageType.TASK_REQUEST
    assert message.metadata == {"SessionId": "s1", "OriginalSender": "User"}

    nobody = await tool.execute(agent_name="Nobody", to_agent_content="design notes")
    assert nobody["delivered"] is False
    assert not (await tool.execute(agent_name="Designer"))["success"]


def test_task_tools_register_under_task_manager(bus):
    registry = ToolRegistry()
    TaskTools.register_all(registry, bus, coding_agent="Coder")

    assert registry.tool_names_for_service("TaskManager") == ["distribute_coding_tasks", "forward_to_agent"]
    assert registry.get_tool("distribute_coding_tasks").coding_agent == "Coder"
