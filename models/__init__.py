"""ORM models and wire payloads shared by the desktop app and the relay."""
from .task import Task
from .completion import Completion
from .setting import Setting

__all__ = ["Task", "Completion", "Setting"]
