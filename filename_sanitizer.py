#!/usr/bin/env python3
"""
Filename helpers for saved MIME messages.

Only "/" is replaced; other characters that some filesystems reject
(":", "\\", control characters) pass through unchanged.
"""

import datetime
from typing import Optional, Tuple

MAX_SUBJECT_LENGTH = 60
SHORT_DATETIME_FORMAT = "%x %H:%M"
UNDATED = "undated"


def sanitize_subject(subject: Optional[str], max_length: int = MAX_SUBJECT_LENGTH) -> str:
    subject = (subject or "").replace('/', ' ').strip()
    subject = subject[:max_length]
    # No-op for valid text; lone surrogates become "?"
    return subject.encode('utf-8', errors='replace').decode('utf-8')


def format_timestamp(timestamp: Optional[datetime.datetime]) -> str:
    if timestamp is None:
        return UNDATED
    return timestamp.strftime(SHORT_DATETIME_FORMAT).replace('/', '_')


def sanitize(subject: Optional[str], timestamp: Optional[datetime.datetime]) -> Tuple[str, str]:
    """
    Derive filename parts from message metadata.

    Args:
        subject: Message subject, may contain path separators
        timestamp: Received date and time

    Returns:
        tuple: (date_part, subject_part)
    """
    return format_timestamp(timestamp), sanitize_subject(subject)


def build_filename(date_part: str, subject_part: str) -> str:
    return f"{date_part}__{subject_part}.eml"
