"""Digest selection and rendering.

A digest holds at most ``limit`` pending summaries, most urgent first, grouped
by urgency for presentation.
"""

from __future__ import annotations

from html import escape

from inbox_digest.models import ThreadSummary, Urgency

GroupedSummaries = dict[Urgency, list[ThreadSummary]]

URGENCY_ORDER: tuple[Urgency, ...] = (Urgency.HIGH, Urgency.MEDIUM, Urgency.LOW)

_RANK = {urgency: rank for rank, urgency in enumerate(URGENCY_ORDER)}


def build_digest(summaries: list[ThreadSummary], limit: int = 10) -> GroupedSummaries:
    """Sort summaries High > Medium > Low, keep the top ``limit`` and group them.

    The sort is stable, so summaries of equal urgency keep their incoming
    order. Urgencies without entries are left out of the result.
    """

    ranked = sorted(summaries, key=lambda s: _RANK[s.urgency])[:limit]

    grouped: GroupedSummaries = {}
    for summary in ranked:
        grouped.setdefault(summary.urgency, []).append(summary)
    return grouped


def render_html(grouped: GroupedSummaries) -> str:
    sections = []
    for urgency, items in grouped.items():
        entries = "".join(
            '<div style="margin-bottom: 20px; padding: 15px; border: 1px solid #eee; '
            'border-radius: 5px;">'
            f'<h3 style="margin: 0 0 10px 0;">{escape(s.subject)}</h3>'
            f'<p style="margin: 0 0 10px 0;">{escape(s.summary)}</p>'
            '<div style="color: #666;">'
            f"<strong>Suggested Action:</strong> {escape(s.suggested_action.value)}"
            "</div></div>"
            for s in items
        )
        sections.append(f"<h2>{urgency.value} Priority</h2>{entries}")

    return (
        "<html><body>"
        "<h1>Your Daily Email Digest</h1>"
        "<p>Here are your most urgent emails that need attention:</p>"
        f"{''.join(sections)}"
        '<p style="margin-top: 20px; color: #666;">'
        "This is an automated digest from your AI Email Assistant."
        "</p></body></html>"
    )


def render_text(grouped: GroupedSummaries) -> str:
    lines = ["Your Daily Email Digest", ""]
    for urgency, items in grouped.items():
        lines.append(f"{urgency.value} Priority")
        for s in items:
            lines.append(f"- {s.subject}")
            if s.summary:
                lines.append(f"  {s.summary}")
            lines.append(f"  Suggested Action: {s.suggested_action.value}")
        lines.append("")
    lines.append("This is an automated digest from your AI Email Assistant.")
    return "\n".join(lines)
