"""Text helpers for notification messages and date display."""
import re
from datetime import date
from typing import Iterable, List

DATE_FORMAT = "%d/%m/%Y"
FRAME_WIDTH = 54


def format_date(value: date) -> str:
    """Format a date the way notices and loan listings show it.

    Examples:
        >>> format_date(date(2024, 3, 9))
        '09/03/2024'
    """
    return value.strftime(DATE_FORMAT)


def sanitize_text(text: str) -> str:
    """Clean a message for terminal output.

    Keeps UTF-8 characters and line breaks; drops control characters that
    would garble a console frame, collapses runs of spaces and trims each
    line.

    Examples:
        >>> sanitize_text("Livre : Les Misérables\\x07  ")
        'Livre : Les Misérables'
        >>> sanitize_text(None)
        ''
    """
    if text is None:
        return ""

    text = str(text)

    # Remove control characters except \t, \n, \r
    text = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F-\x9F]', '', text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n{3,}', '\n\n', text)

    lines = [line.strip() for line in text.split('\n')]
    return '\n'.join(lines).strip()


def render_frame(title: str, header_lines: Iterable[str], body_lines: Iterable[str], footer: str = "") -> str:
    """Draw a boxed notice.

    Layout: title bar, header lines (sender, recipient, ...), separator,
    body lines, and an optional footer section.
    """
    rule = "═" * FRAME_WIDTH
    out: List[str] = [f"╔{rule}╗", f"║ {title}", f"╠{rule}╣"]
    out.extend(f"║ {line}" for line in header_lines)
    out.append(f"╠{rule}╣")
    out.extend(f"║ {line}" for line in body_lines)
    if footer:
        out.append(f"╠{rule}╣")
        out.append(f"║ {footer}")
    out.append(f"╚{rule}╝")
    return "\n".join(out)
