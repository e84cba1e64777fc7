"""Text cleaning utilities."""
import re
from typing import List


def normalize_manuscript(text: str) -> str:
    """Normalize imported manuscript text before segmentation.

    Args:
        text: Raw file contents

    Returns:
        Text with unix line endings and no byte order mark
    """
    if text.startswith('\ufeff'):
        text = text[1:]

    # Windows and old Mac line endings
    text = text.replace('\r\n', '\n').replace('\r', '\n')

    return text


def trim_blank_lines(lines: List[str]) -> str:
    """Join lines, dropping leading and trailing whitespace-only lines.

    Interior blank lines and indentation are kept as written.

    Args:
        lines: Body lines

    Returns:
        Joined body text
    """
    start = 0
    end = len(lines)

    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1

    return '\n'.join(lines[start:end])


def slugify_title(title: str) -> str:
    """Turn a project title into a file name stem."""
    return re.sub(r'\s+', '-', title.strip().lower())
