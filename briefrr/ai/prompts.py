"""
AI prompts for Briefrr modes
"""

from ..models.session import ArticleContent, Mode

# =============================================================================
# SYSTEM PROMPTS
# =============================================================================

SYSTEM_BRIEF = """Create an ultra-concise summary of the provided web content.

IMPORTANT: Only use information from the webpage content provided. Do not add external knowledge.

Format requirements:
- Start with ONE sentence overview
- List 5-10 key bullet points
- Each bullet point: 1 sentence maximum
- Use simple, clear language
- Only include information explicitly stated on the page
- Use clean Markdown formatting

Total response: under 200 words."""

SYSTEM_EXPLAIN = """Create a detailed explanation of the provided web content.

IMPORTANT: Only use information from the webpage content provided. Do not add external knowledge.

Format requirements:
- Start with a 2-3 sentence overview
- List 10-20 key points as bullet points
- Each bullet point: 1-2 sentences explaining a concept
- Group related points under section headings (##) if helpful
- Only explain concepts and ideas mentioned on the page
- End with "Key Takeaways" section (3-5 points)
- Use clean Markdown formatting

Target length: 400-600 words."""

SYSTEM_QUERY = """Answer questions about the provided web content.

Rules:
1. Only use information from the webpage content provided
2. If the answer is not on the page, respond: "This information is not found on this page."
3. Do not use external knowledge or make assumptions
4. Be concise and direct
5. Quote relevant parts when helpful
6. If partial answer available, clarify what is and isn't on the page

Use clean Markdown formatting."""

# =============================================================================
# USER PROMPTS
# =============================================================================

USER_PAGE = """**Page Title**: {title}
**Site**: {site_name}

**Page Content**:
{content}"""

USER_QUERY = """**Page Title**: {title}
**Site**: {site_name}

**Page Content**:
{content}

---

**User Question**: {query}

Please answer the user's question using ONLY the information from the page content above. If the information is not on the page, explicitly state that."""


def get_system_prompt(mode: Mode) -> str:
    """System prompt for a mode"""
    return {
        Mode.BRIEF: SYSTEM_BRIEF,
        Mode.EXPLAIN: SYSTEM_EXPLAIN,
        Mode.QUERY: SYSTEM_QUERY,
    }[mode]


def build_user_prompt(article: ArticleContent, mode: Mode, query: str = "") -> str:
    """Build the user prompt embedding the extracted page content"""
    if mode == Mode.QUERY:
        return USER_QUERY.format(
            title=article.title,
            site_name=article.site_name,
            content=article.content,
            query=query,
        )

    return USER_PAGE.format(
        title=article.title,
        site_name=article.site_name,
        content=article.content,
    )
