"""MCP tools for the Angels Bail Bonds ClickUp space."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, Field

from abb_automation.clickup_client import ClickUpClient, to_millis
from abb_automation.config import Settings
from abb_automation.mcp.protocol import RegistryServer, ToolArgs, ToolRegistry, as_json


def _parseable_date(value: str | None) -> str | None:
    if value is not None:
        to_millis(value)
    return value


DueDate = Annotated[str | None, AfterValidator(_parseable_date)]


class SpaceArgs(ToolArgs):
    spaceId: str | None = Field(None, description="Space ID (defaults to Angels Bail Bonds)")


class ListListsArgs(SpaceArgs):
    folderId: str | None = Field(None, description="Folder ID (if listing lists inside a folder)")


class ListTasksArgs(ToolArgs):
    listId: str = Field(..., description="The list ID to fetch tasks from")
    status: str | None = Field(None, description="Filter by status (e.g. 'open', 'in progress', 'complete')")
    assigneeId: str | None = Field(None, description="Filter by assignee user ID")
    page: int = Field(0, ge=0, description="Page number for pagination (default 0)")


class TaskIdArgs(ToolArgs):
    taskId: str = Field(..., description="The task ID")


class CreateTaskArgs(ToolArgs):
    listId: str = Field(..., description="The list ID to create the task in")
    name: str = Field(..., description="Task name")
    description: str | None = Field(None, description="Task description")
    status: str | None = Field(None, description="Task status")
    priority: int | None = Field(None, ge=1, le=4, description="Priority: 1=urgent, 2=high, 3=normal, 4=low")
    dueDate: DueDate = Field(None, description="Due date as ISO string (e.g. 2026-03-01) or MM/DD/YYYY")
    assignees: list[int] | None = Field(None, description="Array of user IDs to assign")


class UpdateTaskArgs(ToolArgs):
    taskId: str = Field(..., description="The task ID to update")
    name: str | None = Field(None, description="New task name")
    description: str | None = Field(None, description="New description")
    status: str | None = Field(None, description="New status")
    priority: int | None = Field(None, ge=1, le=4, description="New priority: 1=urgent, 2=high, 3=normal, 4=low")
    dueDate: DueDate = Field(None, description="New due date as ISO string or MM/DD/YYYY")


class SearchArgs(ToolArgs):
    query: str = Field(..., description="Search query string")


class CommentArgs(ToolArgs):
    taskId: str = Field(..., description="The task ID")
    comment: str = Field(..., description="The comment text")


def _due(millis: str | int | None) -> str | None:
    if not millis:
        return None
    return datetime.fromtimestamp(int(millis) / 1000, tz=timezone.utc).date().isoformat()


def build_registry(client: ClickUpClient) -> ToolRegistry:
    mcp = ToolRegistry("clickup-angels-bail-bonds", "ClickUp tasks for Angels Bail Bonds")

    @mcp.tool("list_spaces", "List all ClickUp spaces in the workspace")
    def list_spaces(_args) -> str:
        return as_json([{"id": s["id"], "name": s["name"]} for s in client.list_spaces()])

    @mcp.tool("list_folders", "List folders in a ClickUp space", SpaceArgs)
    def list_folders(args: SpaceArgs) -> str:
        return as_json([
            {"id": f["id"], "name": f["name"], "taskCount": f.get("task_count")}
            for f in client.list_folders(args.spaceId)
        ])

    @mcp.tool("list_lists", "List task lists in a ClickUp space or folder", ListListsArgs)
    def list_lists(args: ListListsArgs) -> str:
        return as_json([
            {"id": l["id"], "name": l["name"], "taskCount": l.get("task_count"),
             "status": (l.get("status") or {}).get("status")}
            for l in client.list_lists(args.spaceId, args.folderId)
        ])

    @mcp.tool("list_tasks", "List tasks in a ClickUp list", ListTasksArgs)
    def list_tasks(args: ListTasksArgs) -> str:
        tasks = client.list_tasks(args.listId, page=args.page, status=args.status,
                                  assignee_id=args.assigneeId)
        return as_json([
            {
                "id": t["id"],
                "name": t["name"],
                "status": (t.get("status") or {}).get("status"),
                "priority": (t.get("priority") or {}).get("priority"),
                "assignees": [a.get("username") for a in t.get("assignees") or []],
                "dueDate": _due(t.get("due_date")),
                "url": t.get("url"),
            }
            for t in tasks
        ])

    @mcp.tool("get_task", "Get full details of a ClickUp task", TaskIdArgs)
    def get_task(args: TaskIdArgs) -> str:
        return as_json(client.get_task(args.taskId))

    @mcp.tool("create_task", "Create a new task in a ClickUp list", CreateTaskArgs)
    def create_task(args: CreateTaskArgs) -> str:
        data = client.create_task(args.listId, args.name, description=args.description,
                                  status=args.status, priority=args.priority,
                                  due_date=args.dueDate, assignees=args.assignees)
        return f'Task created: "{data.get("name")}" (ID: {data.get("id")})\nURL: {data.get("url")}'

    @mcp.tool("update_task", "Update an existing ClickUp task", UpdateTaskArgs)
    def update_task(args: UpdateTaskArgs) -> str:
        data = client.update_task(args.taskId, name=args.name, description=args.description,
                                  status=args.status, priority=args.priority,
                                  due_date=args.dueDate)
        return f'Task updated: "{data.get("name")}" - status: {(data.get("status") or {}).get("status")}'

    @mcp.tool("search_tasks", "Search for tasks across the Angels Bail Bonds ClickUp space", SearchArgs)
    def search_tasks(args: SearchArgs) -> str:
        return as_json([
            {"id": t["id"], "name": t["name"], "status": (t.get("status") or {}).get("status"),
             "list": (t.get("list") or {}).get("name"), "url": t.get("url")}
            for t in client.search_tasks(args.query)
        ])

    @mcp.tool("add_comment", "Add a comment to a ClickUp task", CommentArgs)
    def add_comment(args: CommentArgs) -> str:
        client.add_comment(args.taskId, args.comment)
        return f"Comment added to task {args.taskId}."

    return mcp


def create_server(client: ClickUpClient | None = None, settings: Settings | None = None,
                  **server_settings) -> RegistryServer:
    client = client or ClickUpClient.from_settings(settings or Settings.from_env())
    return RegistryServer(build_registry(client), **server_settings)
