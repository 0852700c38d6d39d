"""
Portfolio progress and the HTML portfolio-update email.

progress() is shared by get_portfolio_summary and send_project_update so the
two always agree on the numbers.
"""

from datetime import datetime
from html import escape
from typing import Any, Dict, List, Optional, Tuple

FUTURE_MARKER = "[FUTURE]"

STATUS_COLORS = {
    "active": "#28a745",
    "discovery": "#ffc107",
    "pilot": "#17a2b8",
    "deployed": "#007bff",
}
DEFAULT_STATUS_COLOR = "#6c757d"


def progress(milestones: Optional[List[Dict[str, Any]]]) -> Tuple[int, int, int]:
    """
    Count finished milestones.

    Returns:
        tuple: (done, total, percent) where percent is 100 * done / total
            rounded half up, and 0 when there are no milestones
    """
    milestones = milestones or []
    total = len(milestones)
    done = sum(1 for m in milestones if m.get("status") == "done")
    if total == 0:
        return done, total, 0
    return done, total, (200 * done + total) // (2 * total)


def is_future(milestone: Dict[str, Any]) -> bool:
    return (milestone.get("title") or "").startswith(FUTURE_MARKER)


def format_date(when: datetime) -> str:
    """Long date used in the subject and header, e.g. 'Monday, October 19, 2026'."""
    return f"{when:%A}, {when:%B} {when.day}, {when.year}"


def default_subject(when: datetime) -> str:
    return f"AI-in-a-Box Portfolio Update — {format_date(when)}"


def _summary_row(company: Dict[str, Any]) -> str:
    done, total, percent = progress(company.get("milestones"))
    color = STATUS_COLORS.get(company.get("status"), DEFAULT_STATUS_COLOR)
    return f"""
        <tr>
          <td style="padding: 12px; border-bottom: 1px solid #ddd;"><strong>{escape(company.get("name") or "")}</strong></td>
          <td style="padding: 12px; border-bottom: 1px solid #ddd;">
            <span style="background: {color}; color: white; padding: 4px 10px; border-radius: 12px; font-size: 12px;">
              {escape(company.get("status") or "")}
            </span>
          </td>
          <td style="padding: 12px; border-bottom: 1px solid #ddd;">
            <div style="background: #e9ecef; border-radius: 10px; height: 20px; width: 150px; overflow: hidden;">
              <div style="background: linear-gradient(90deg, #28a745, #20c997); height: 100%; width: {percent}%;"></div>
            </div>
            <span style="font-size: 12px; color: #666;">{done}/{total} milestones ({percent}%)</span>
          </td>
        </tr>"""


def _detail_block(company: Dict[str, Any]) -> str:
    parts = [f"""
        <div style="margin-bottom: 30px; padding: 20px; background: #f8f9fa; border-radius: 8px;">
          <h3 style="color: #1a365d; margin-top: 0;">{escape(company.get("name") or "")}</h3>
          <p style="color: #666; font-size: 14px;">{escape(company.get("description") or "")}</p>"""]

    milestones = sorted(
        (m for m in company.get("milestones") or [] if not is_future(m)),
        key=lambda m: m.get("order_index") or 0,
    )
    if milestones:
        parts.append('<p style="margin-bottom: 5px;"><strong>Milestones:</strong></p><ul style="margin-top: 5px;">')
        for m in milestones:
            finished = m.get("status") == "done"
            icon = "✓" if finished else "○"
            style = "color: #28a745;" if finished else "color: #666;"
            parts.append(f'<li style="{style}">{icon} {escape(m.get("title") or "")}</li>')
        parts.append("</ul>")

    needed = [r for r in company.get("requirements") or [] if r.get("status") == "needed"]
    if needed:
        parts.append('<p style="margin-bottom: 5px;"><strong>Still Need:</strong></p><ul style="margin-top: 5px;">')
        for r in needed:
            parts.append(f'<li style="color: #856404;">{escape(r.get("item") or "")}</li>')
        parts.append("</ul>")

    parts.append("</div>")
    return "\n".join(parts)


def render_portfolio_update(
    companies: List[Dict[str, Any]],
    when: datetime,
    include_details: bool = False,
) -> str:
    """
    Render the portfolio update email body.

    Args:
        companies: Companies with embedded milestones (title, status, order_index)
            and requirements (item, status)
        when: Date shown in the header
        include_details: Add a per-company block with milestones (excluding
            [FUTURE] ones) and outstanding requirements
    """
    html = [f"""
      <div style="font-family: Arial, sans-serif; max-width: 700px; margin: 0 auto;">
        <h1 style="color: #1a365d; border-bottom: 2px solid #1a365d; padding-bottom: 10px;">
          AI-in-a-Box Portfolio Update
        </h1>
        <p style="color: #666; font-size: 14px;">{format_date(when)}</p>

        <h2 style="color: #1a365d; margin-top: 30px;">Portfolio Summary</h2>
        <table style="width: 100%; border-collapse: collapse; margin-bottom: 30px;">
          <tr style="background: #f0f4f8;">
            <th style="padding: 12px; text-align: left; border-bottom: 2px solid #ddd;">Company</th>
            <th style="padding: 12px; text-align: left; border-bottom: 2px solid #ddd;">Status</th>
            <th style="padding: 12px; text-align: left; border-bottom: 2px solid #ddd;">Progress</th>
          </tr>"""]

    html.extend(_summary_row(c) for c in companies)
    html.append("</table>")

    if include_details:
        html.extend(_detail_block(c) for c in companies)

    html.append("""
        <hr style="border: none; border-top: 1px solid #ddd; margin: 30px 0;">
        <p style="color: #888; font-size: 12px;">
          Sent from AI-in-a-Box Project Tracker
        </p>
      </div>""")
    return "\n".join(html)
