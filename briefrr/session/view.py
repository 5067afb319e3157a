"""
Session view interface

The controller pushes complete state to the view (never diffs), so rendering
the same accumulated text twice gives the same result.
"""

from ..models.session import ClassifiedFailure, Mode


LOADING_EXTRACTING = "Extracting page content..."

LOADING_BY_MODE = {
    Mode.BRIEF: "Generating brief...",
    Mode.EXPLAIN: "Generating explanation...",
    Mode.QUERY: "Searching page content...",
}

QUERY_PROMPT = "Ask a question about this page and press Enter."


class SessionView:
    """Base view, every hook is a no-op"""

    def show_mode(self, mode: Mode) -> None:
        """Header shows the selected mode"""
        pass

    def show_query_prompt(self) -> None:
        """Query mode selected, waiting for a question"""
        pass

    def show_loading(self, message: str) -> None:
        pass

    def render(self, text: str, in_progress: bool) -> None:
        """
        Render the whole accumulated text

        Args:
            text: Full response so far
            in_progress: Show the streaming cursor
        """
        pass

    def show_error(self, failure: ClassifiedFailure) -> None:
        """Failure with optional retry button or countdown"""
        pass

    def update_countdown(self, remaining_ms: int) -> None:
        """Auto-retry countdown tick"""
        pass

    def on_closed(self) -> None:
        pass
