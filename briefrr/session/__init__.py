"""Session side: content extraction, view hooks and the run state machine"""

from .content import (
    ContentProvider, StaticContentProvider, TextFileContentProvider, cap_content
)
from .controller import SessionController, classify_error
from .view import SessionView

__all__ = [
    "ContentProvider",
    "StaticContentProvider",
    "TextFileContentProvider",
    "cap_content",
    "SessionController",
    "classify_error",
    "SessionView"
]
