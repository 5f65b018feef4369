"""Cloud relay: mailbox for mobile edits and mirror of the desktop task list."""
from .app import create_app

__all__ = ["create_app"]
