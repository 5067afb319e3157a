"""
Basic Briefrr usage example
Brief, explain and query a page, streaming each answer as it arrives
"""

import asyncio
import os

from briefrr import Mode, SessionView, StaticContentProvider, create_memory_briefrr
from briefrr.exceptions import BriefrrError

ARTICLE = """
Server-sent events let a server push a stream of text updates over one HTTP
response. Each event is a line starting with "data: " followed by a payload,
and a blank line ends the event. Clients read the body incrementally, so the
first words of a long answer can be shown while the rest is still generated.
Because network reads do not respect event boundaries, a client must buffer
partial lines and partial multi-byte characters between reads.
"""


class PrintView(SessionView):
    """Print only the new part of each render"""

    def __init__(self):
        self.printed = 0

    def show_loading(self, message):
        print(f"⏳ {message}")

    def render(self, text, in_progress):
        print(text[self.printed:], end="", flush=True)
        self.printed = len(text)
        if not in_progress:
            print()


async def main():
    """Demonstrate the three Briefrr modes"""

    print("🚀 Briefrr Example")
    print("=" * 40)

    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        print("Set GEMINI_API_KEY to run this example")
        return

    briefrr = create_memory_briefrr(api_key=api_key)
    page = StaticContentProvider(ARTICLE, title="Server-sent events", site_name="example.com")

    async with briefrr:
        for mode, query in [
            (Mode.BRIEF, ""),
            (Mode.EXPLAIN, ""),
            (Mode.QUERY, "Why must clients buffer partial lines?"),
        ]:
            print(f"\n{mode.icon} {mode.label}")
            print("-" * 40)
            try:
                await briefrr.generate(page, mode, query, view=PrintView())
            except BriefrrError as e:
                print(f"❌ {e}")

            cooldown = await briefrr.rate_limiter.get_remaining_cooldown()
            if cooldown:
                await asyncio.sleep(cooldown / 1000)

    print("\n✅ Done")


if __name__ == "__main__":
    asyncio.run(main())
