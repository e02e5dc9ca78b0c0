# =============================================================================
# app/routers/todos.py - To-do Endpoints
# =============================================================================
# Dashboard endpoints. All endpoints require authentication and only ever
# touch the caller's own to-dos.
#
#   GET    /todos                     list (status/priority filter, search)
#   POST   /todos                     create (201)
#   GET    /todos/stats               counters
#   DELETE /todos/completed           clear completed
#   GET    /todos/{id}                one to-do
#   PATCH  /todos/{id}                partial update
#   POST   /todos/{id}/toggle         pending <-> completed
#   DELETE /todos/{id}                delete
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Response, status
from pydantic import BaseModel, Field

from app.auth import get_current_user, AuthUser
from app.dependencies import TodoServiceDep
from core.models.todo import (
    Todo,
    TodoCreate,
    TodoFilters,
    TodoPriority,
    TodoStats,
    TodoStatus,
    TodoUpdate,
)

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class TodoList(BaseModel):
    """List response."""
    todos: list[Todo]
    total: int = Field(..., example=3)


class DeleteCompletedResponse(BaseModel):
    deleted: int = Field(..., example=2)
    message: str = Field(default="Completed to-dos deleted")


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=TodoList)
def list_todos(
    todos: TodoServiceDep,
    user: AuthUser = Depends(get_current_user),
    status_filter: Annotated[TodoStatus | None, Query(alias="status", description="Filter by status")] = None,
    priority: Annotated[TodoPriority | None, Query(description="Filter by priority")] = None,
    search: Annotated[str | None, Query(description="Case-insensitive text in title or description")] = None,
):
    """
    List the user's to-dos, newest first.

    `status` and `priority` are applied by the database query; `search`
    is applied to the fetched list.
    """
    filters = TodoFilters(status=status_filter, priority=priority)
    items = todos.get_todos(user.id, filters)

    if search and search.strip():
        items = [todo for todo in items if todo.matches(search.strip())]

    return TodoList(todos=items, total=len(items))


@router.post("", response_model=Todo, status_code=status.HTTP_201_CREATED)
def create_todo(
    request: TodoCreate,
    todos: TodoServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """Create a to-do. New to-dos start pending with medium priority by default."""
    return todos.create_todo(request, user.id)


@router.get("/stats", response_model=TodoStats)
def get_stats(
    todos: TodoServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """Counts by status and priority plus overdue (pending, past due date)."""
    return todos.get_todos_stats(user.id)


@router.delete("/completed", response_model=DeleteCompletedResponse)
def delete_completed(
    todos: TodoServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    removed = todos.delete_completed_todos(user.id)
    return DeleteCompletedResponse(deleted=removed)


@router.get("/{todo_id}", response_model=Todo)
def get_todo(
    todo_id: Annotated[str, Path(description="To-do id")],
    todos: TodoServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    return todos.get_todo(todo_id, user.id)


@router.patch("/{todo_id}", response_model=Todo)
def update_todo(
    todo_id: Annotated[str, Path(description="To-do id")],
    request: TodoUpdate,
    todos: TodoServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Update a to-do.

    Only fields present in the body change; "due_date": null clears it.
    """
    return todos.update_todo(todo_id, request, user.id)


@router.post("/{todo_id}/toggle", response_model=Todo)
def toggle_todo(
    todo_id: Annotated[str, Path(description="To-do id")],
    todos: TodoServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    return todos.toggle_todo_status(todo_id, user.id)


@router.delete("/{todo_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_todo(
    todo_id: Annotated[str, Path(description="To-do id")],
    todos: TodoServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    todos.delete_todo(todo_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
