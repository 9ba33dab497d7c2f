"""
Pydantic data models for niri-sticky.

Defines niri window/workspace snapshots, window membership and the
request/response types exchanged over the daemon socket.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

U64_MAX = 2**64 - 1


# Enumerations

class Membership(str, Enum):
    """Which policy set a window currently belongs to."""
    ABSENT = "absent"
    STICKY = "sticky"
    STAGED = "staged"


class Command(str, Enum):
    """Leading keyword of a request line."""
    ADD = "add"
    REMOVE = "remove"
    LIST = "list"
    TOGGLE_ACTIVE = "toggle_active"
    TOGGLE_APPID = "toggle_appid"
    TOGGLE_TITLE = "toggle_title"
    STAGE = "stage"
    UNSTAGE = "unstage"
    PING = "ping"


class Selector(str, Enum):
    """How a stage/unstage request picks its windows."""
    ID = "id"
    ALL = "all"
    LIST = "list"
    ACTIVE = "active"
    APPID = "appid"
    TITLE = "title"
    TOGGLE_APPID = "toggle_appid"
    TOGGLE_TITLE = "toggle_title"


class ResponseKind(str, Enum):
    """Kind of reply written back to the client."""
    SUCCESS = "success"
    ERROR = "error"
    DATA = "data"


# niri snapshots

class WindowInfo(BaseModel):
    """A window as reported by niri."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., ge=0, le=U64_MAX, description="niri window ID")
    app_id: Optional[str] = Field(None, description="Wayland app_id")
    title: Optional[str] = Field(None, description="Window title")
    workspace_id: Optional[int] = Field(None, description="Workspace holding the window")
    is_focused: bool = Field(False, description="Whether the window has focus")


class WorkspaceInfo(BaseModel):
    """A workspace as reported by niri."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., ge=0, le=U64_MAX, description="niri workspace ID")
    idx: Optional[int] = Field(None, description="Index on its output")
    name: Optional[str] = Field(None, description="Workspace name, if named")
    output: Optional[str] = Field(None, description="Output the workspace lives on")
    is_active: bool = Field(False, description="Active on its output")
    is_focused: bool = Field(False, description="Focused workspace")


# Requests / responses

class Request(BaseModel):
    """A parsed request line."""

    command: Command
    selector: Optional[Selector] = None
    window_id: Optional[int] = Field(None, ge=0, le=U64_MAX)
    appid: Optional[str] = None
    title: Optional[str] = None

    @model_validator(mode='after')
    def validate_arguments(self):
        """Check that the selector carries the argument it needs."""
        if self.command in (Command.ADD, Command.REMOVE) and self.window_id is None:
            raise ValueError(f"{self.command.value} requires a window id")
        if self.selector == Selector.ID and self.window_id is None:
            raise ValueError("id selector requires a window id")
        if self.selector in (Selector.APPID, Selector.TOGGLE_APPID) and not self.appid:
            raise ValueError("appid selector requires an appid")
        if self.selector in (Selector.TITLE, Selector.TOGGLE_TITLE) and not self.title:
            raise ValueError("title selector requires a title")
        return self


class Response(BaseModel):
    """Result of handling one request."""

    kind: ResponseKind
    text: str

    @classmethod
    def success(cls, text: str) -> "Response":
        return cls(kind=ResponseKind.SUCCESS, text=text)

    @classmethod
    def error(cls, text: str) -> "Response":
        return cls(kind=ResponseKind.ERROR, text=text)

    @classmethod
    def data(cls, text: str) -> "Response":
        return cls(kind=ResponseKind.DATA, text=text)
