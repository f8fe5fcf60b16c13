"""Markdown + LaTeX rendering of question text for the student client.

The server converts question and option markup to HTML fragments and leaves
the math to MathJax on the client, so stored exams stay plain text and the
rendering engine can change without touching exam files.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

from exam_app.core.models import McqQuestion, Question


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        """Render a markdown string into an HTML fragment."""

        sanitized = markdown_text.strip() or ""
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str) -> str:
        """Render a single line (e.g. an option) without a wrapping paragraph."""

        return self._markdown.renderInline(markdown_text.strip())

    def render_question(self, question: Question) -> dict[str, object]:
        """Client-facing view of a question; never includes the expected answer."""

        payload: dict[str, object] = {
            "id": question.id,
            "type": question.kind.value,
            "html": self.render_fragment(question.text),
        }
        if isinstance(question, McqQuestion):
            payload["options"] = [
                {"id": option.id, "html": self.render_inline(option.text)}
                for option in question.options
            ]
        return payload


renderer = MarkdownMathRenderer()
# Shared instance; MarkdownIt is safe for read-only renders.
