"""
Content providers - hand extracted page text to the session

Deciding which part of a page is "the article" is out of scope here: a
provider returns plain text plus metadata, synchronously, or raises.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse
import logging

from ..exceptions import ExtractionError
from ..models.session import ArticleContent

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 50000  # Cap content at ~50k characters


def cap_content(article: ArticleContent, limit: int = MAX_CONTENT_LENGTH) -> ArticleContent:
    """Return the article with its content cut to `limit` characters"""
    if len(article.content) <= limit:
        return article
    return ArticleContent(
        title=article.title,
        content=article.content[:limit],
        excerpt=article.excerpt,
        site_name=article.site_name,
        length=article.length,
    )


class ContentProvider(ABC):
    """Base class for page content sources"""

    @abstractmethod
    def extract(self) -> ArticleContent:
        """
        Extract the current page

        Returns:
            ArticleContent with content capped at MAX_CONTENT_LENGTH

        Raises:
            Exception: Any failure means the page could not be extracted
        """
        pass


class StaticContentProvider(ContentProvider):
    """Serves text that was extracted elsewhere"""

    def __init__(
        self,
        content: str,
        title: str = "Untitled Page",
        site_name: str = "",
        excerpt: str = ""
    ):
        self.content = content
        self.title = title
        self.site_name = site_name
        self.excerpt = excerpt

    def extract(self) -> ArticleContent:
        return cap_content(ArticleContent(
            title=self.title,
            content=self.content,
            excerpt=self.excerpt,
            site_name=self.site_name,
            length=len(self.content),
        ))


class TextFileContentProvider(ContentProvider):
    """Reads a saved page from a plain text file"""

    def __init__(self, path: Union[str, Path], source_url: Optional[str] = None):
        self.path = Path(path)
        self.source_url = source_url

    def _site_name(self) -> str:
        if self.source_url:
            return urlparse(self.source_url).hostname or "local"
        return "local"

    def extract(self) -> ArticleContent:
        try:
            text = self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExtractionError(f"Cannot read {self.path}: {e}") from e

        # First non-empty line doubles as the title when it looks like one
        title = self.path.stem
        first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
        if first_line and len(first_line) <= 200:
            title = first_line.lstrip("# ").strip() or title

        logger.debug(f"Read {len(text)} characters from {self.path}")
        return cap_content(ArticleContent(
            title=title,
            content=text,
            site_name=self._site_name(),
            length=len(text),
        ))
