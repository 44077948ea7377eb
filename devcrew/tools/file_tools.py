"""
Project File Tools

Tools for reading and writing source files inside one project root.
Every path is resolved relative to the root; a path that escapes it is
rejected with ValueError.

Services:
- FileSystem: list_files
- FileRead: list_files, read_file
- FileCreate: create_file, write_file, delete_file
"""

import os
from typing import Any, Dict, List

from .base import BaseTool, ToolRegistry
from ..utils.logger import get_logger

logger = get_logger(__name__)


MAX_READ_BYTES = 256 * 1024


class ProjectRoot:
    """Sandbox for file tools."""

    def __init__(self, root: str):
        self.root = os.path.realpath(root)

    def resolve(self, path: str) -> str:
        """Absolute path inside the root. Raises ValueError on escape."""
        candidate = os.path.realpath(os.path.join(self.root, path or "."))
        if candidate != self.root and not candidate.startswith(self.root + os.sep):
            raise ValueError(f"Path escapes project root: {path}")
        return candidate

    def relative(self, path: str) -> str:
        return os.path.relpath(path, self.root).replace(os.sep, "/")


class ListFilesTool(BaseTool):
    """List files under a project directory."""

    name = "list_files"
    description = """List files and folders under a directory of the project.
    Paths are relative to the project root. Use this before reading files."""

    def __init__(self, project: ProjectRoot):
        self.project = project

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory relative to the project root (default: root).",
                    "default": ".",
                },
                "recursive": {
                    "type": "boolean",
                    "description": "Include nested directories (default: true).",
                    "default": True,
                },
            },
        }

    async def execute(self, path: str = ".", recursive: bool = True, **_: Any) -> Dict[str, Any]:
        directory = self.project.resolve(path)
        if not os.path.isdir(directory):
            return {"success": False, "error": f"Directory '{path}' not found."}

        files: List[str] = []
        directories: List[str] = []
        if recursive:
            for current, dirnames, filenames in os.walk(directory):
                dirnames.sort()
                for dirname in dirnames:
                    directories.append(self.project.relative(os.path.join(current, dirname)))
                for filename in sorted(filenames):
                    files.append(self.project.relative(os.path.join(current, filename)))
        else:
            for entry in sorted(os.listdir(directory)):
                full = os.path.join(directory, entry)
                target = directories if os.path.isdir(full) else files
                target.append(self.project.relative(full))

        return {"success": True, "path": path, "directories": directories, "files": files}


class ReadFileTool(BaseTool):
    """Read a text file."""

    name = "read_file"
    description = """Read the content of a text file in the project.
    Use this to inspect existing code before changing it or depending on it."""

    def __init__(self, project: ProjectRoot):
        self.project = project

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File path relative to the project root.",
                },
            },
            "required": ["path"],
        }

    async def execute(self, path: str, **_: Any) -> Dict[str, Any]:
        full = self.project.resolve(path)
        if not os.path.isfile(full):
            return {"success": False, "error": f"File '{path}' not found."}

        with open(full, "r", encoding="utf-8", errors="replace") as f:
            content = f.read(MAX_READ_BYTES + 1)
        truncated = len(content) > MAX_READ_BYTES
        return {
            "success": True,
            "path": path,
            "content": content[:MAX_READ_BYTES],
            "truncated": truncated,
        }


class CreateFileTool(BaseTool):
    """Create a new file; refuses to overwrite."""

    name = "create_file"
    description = """Create a new file in the project with the given content.
    Missing parent folders are created. Fails if the file already exists;
    use write_file to replace an existing file."""

    def __init__(self, project: ProjectRoot):
        self.project = project

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File path relative to the project root.",
                },
                "content": {
                    "type": "string",
                    "description": "Full file content.",
                },
            },
            "required": ["path", "content"],
        }

    async def execute(self, path: str, content: str = "", **_: Any) -> Dict[str, Any]:
        full = self.project.resolve(path)
        if os.path.exists(full):
            return {"success": False, "error": f"File '{path}' already exists."}

        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "w", encoding="utf-8") as f:
            f.write(content)
        logger.info("File created", path=path, size=len(content))
        return {"success": True, "path": path, "message": f"File '{path}' created."}


class WriteFileTool(BaseTool):
    """Create or replace a file."""

    name = "write_file"
    description = """Write content to a file in the project, replacing it if it exists."""

    def __init__(self, project: ProjectRoot):
        self.project = project

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File path relative to the project root.",
                },
                "content": {
                    "type": "string",
                    "description": "Full file content.",
                },
            },
            "required": ["path", "content"],
        }

    async def execute(self, path: str, content: str = "", **_: Any) -> Dict[str, Any]:
        full = self.project.resolve(path)
        existed = os.path.exists(full)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "w", encoding="utf-8") as f:
            f.write(content)
        logger.info("File written", path=path, size=len(content), replaced=existed)
        return {"success": True, "path": path, "replaced": existed}


class DeleteFileTool(BaseTool):
    """Delete a file."""

    name = "delete_file"
    description = """Delete a file from the project."""

    def __init__(self, project: ProjectRoot):
        self.project = project

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File path relative to the project root.",
                },
            },
            "required": ["path"],
        }

    async def execute(self, path: str, **_: Any) -> Dict[str, Any]:
        full = self.project.resolve(path)
        if not os.path.isfile(full):
            return {"success": False, "error": f"File '{path}' not found."}

        os.remove(full)
        logger.info("File deleted", path=path)
        return {"success": True, "path": path, "message": f"File '{path}' deleted."}


class FileTools:
    """Container for project file tools."""

    @staticmethod
    def register_all(registry: ToolRegistry, root: str) -> ProjectRoot:
        """Register all file tools confined to ``root``."""
        project = ProjectRoot(root)
        list_files = ListFilesTool(project)

        registry.register_tool(list_files, "FileSystem")
        registry.register_tool(list_files, "FileRead")
        registry.register_tool(ReadFileTool(project), "FileRead")
        registry.register_tool(CreateFileTool(project), "FileCreate")
        registry.register_tool(WriteFileTool(project), "FileCreate")
        registry.register_tool(DeleteFileTool(project), "FileCreate")
        return project
