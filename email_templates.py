# -*- coding: utf-8 -*-
"""
RumbleOn Tracker Email Templates
================================
HTML email templates for RumbleOn listing notifications.

Features:
- One table row per listing: photo, title, price, mileage, listing type
- Countdown of days left on the retail site (negative once expired)
- US-style number grouping for price and mileage
- Error report template with message and traceback
"""
import html
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from tracker_common import RUMBLEON_BUY_URL, RenderFailure

__version__ = "1.3.0"
# v1.3.0: Round halves up in price/mileage; accept 7-digit fractions and +HHMM offsets
# v1.2.0: Absent listing fields render as "---" instead of "None"
# v1.1.0: Escape listing text; malformed price/mileage raise RenderFailure
# v1.0.0: Initial release - listing rows, report wrapper, error report

COLORS = {
    'price': '#383',
    'text_gray': '#666',
    'error': '#c00',
}

# Placeholder for listing fields the search service did not return
MISSING = "---"

# _source fields used in the email
LISTING_FIELDS = (
    "title",
    "vin",
    "imageUrl",
    "price",
    "mileage",
    "listingType",
    "retailSiteEndTime",
)

ERROR_SUBJECT = "Error running rumbleon tracker"

SECONDS_PER_DAY = 86400


def parse_hit(hit: Dict[str, Any]) -> Dict[str, Any]:
    """
    Narrow a raw search hit to the fields the email uses.

    Accepts either the provider document (with "_source") or an already
    unwrapped source dict. Absent fields are None.
    """
    source = hit.get("_source", hit) if isinstance(hit, dict) else None
    if not isinstance(source, dict):
        raise RenderFailure(f"Search hit has no _source object: {hit!r}")
    return {field: source.get(field) for field in LISTING_FIELDS}


def format_number(value: Union[int, float, str, None], field: str = "value") -> str:
    """Format a number as a US-grouped integer, halves rounded up (12344.5 -> "12,345")."""
    if value is None:
        return MISSING
    if isinstance(value, bool):
        raise RenderFailure(f"Invalid {field}: {value!r}")
    try:
        number = Decimal(str(value).strip()).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise RenderFailure(f"Invalid {field}: {value!r}") from e
    if not number.is_finite():
        raise RenderFailure(f"Invalid {field}: {value!r}")
    return f"{number:,}"


# Python < 3.11 fromisoformat() takes at most 6 fraction digits and only "+HH:MM" offsets
_ISO_FRACTION = re.compile(r'\.(\d+)')
_ISO_OFFSET = re.compile(r'([+-])(\d{2})(\d{2})$')


def _normalize_iso(value: str) -> str:
    text = value.strip()
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    text = _ISO_FRACTION.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
    return _ISO_OFFSET.sub(r'\1\2:\3', text)


def _parse_end_time(value: Union[str, int, float]) -> datetime:
    """Parse retailSiteEndTime (ISO 8601 string or epoch milliseconds) as aware UTC."""
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        parsed = datetime.fromisoformat(_normalize_iso(str(value)))
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise RenderFailure(f"Invalid retailSiteEndTime: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_left(end_time: Union[str, int, float, None], now: Optional[datetime] = None) -> Optional[int]:
    """
    Whole days from now until end_time, truncated toward zero.

    Negative once the listing has ended. None when there is no end time.
    """
    if end_time is None:
        return None
    end = _parse_end_time(end_time)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return int((end - now).total_seconds() / SECONDS_PER_DAY)


def _text(value: Any) -> str:
    return MISSING if value is None else html.escape(str(value))


def render_listing_row(hit: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """
    Build a single listing row for the email table.

    Args:
        hit: Search hit from the RumbleOn index
        now: Reference time for the days-left countdown (defaults to current UTC time)

    Raises:
        RenderFailure: price, mileage or end time present but not parseable
    """
    item = parse_hit(hit)

    vin = item["vin"]
    link = f"{RUMBLEON_BUY_URL}/{html.escape(str(vin))}" if vin is not None else RUMBLEON_BUY_URL
    image_url = html.escape(str(item["imageUrl"])) if item["imageUrl"] is not None else ""

    price = format_number(item["price"], "price")
    price_str = f"${price}" if price != MISSING else MISSING
    mileage = format_number(item["mileage"], "mileage")

    days = days_left(item["retailSiteEndTime"], now)
    days_str = MISSING if days is None else str(days)

    return f'''
  <tr>
    <td width="50%">
      <a href="{link}">
        <img src="{image_url}" width="100%"/>
      </a>
    </td>
    <td width="50%">
      <h2>
        {_text(item["title"])}
        <br />
        <span style="color:{COLORS['price']}">{price_str}</span>
      </h2>
      <p>
        {mileage} miles ({_text(item["listingType"])})
        <br />
        {days_str} days left
      </p>
    </td>
  </tr>
'''


def _build_email_wrapper(header_html: str, body_html: str, footer_text: str) -> str:
    """Build the complete HTML document around a header and body."""
    return f'''
<html>
  <body>
    {header_html}
    {body_html}
    <div style="text-align: center; color: {COLORS['text_gray']}; font-size: 10px;">{html.escape(footer_text)}</div>
  </body>
</html>
'''


def get_subject_line(count: int, query: str) -> str:
    """Subject for the listings email, e.g. "Found 2 motorcycles that match Harley"."""
    return f"Found {count} motorcycles that match {query}"


def get_report_html(query: str, rows: List[str]) -> str:
    """
    Generate the HTML email body for rendered listing rows.

    The query is shown exactly as given on the command line. Rows are
    included in the order received.
    """
    header = f'''
    <div style="text-align: center">
      <h1>RumbleOn</h1>
      <pre>"{query}"</pre>
    </div>'''

    body = f'''
    <table cellpadding="25">
      {"".join(rows)}
    </table>'''

    return _build_email_wrapper(header, body, "RUMBLEON TRACKER AUTO-NOTIFICATION")


def get_error_html(message: str, trace: str = "") -> str:
    """Generate HTML for the error report (message followed by traceback)."""
    header = f'''
    <div style="text-align: center">
      <h1 style="color: {COLORS['error']}">RumbleOn Tracker Error</h1>
    </div>'''

    body = f'''
    <pre>{html.escape(str(message))}
{html.escape(trace)}</pre>'''

    return _build_email_wrapper(header, body, "RUMBLEON TRACKER SYSTEM NOTICE")


def format_report_email(query: str, rows: List[str]) -> Dict[str, str]:
    """Format complete listings email (subject + html)."""
    return {
        "subject": get_subject_line(len(rows), query),
        "html": get_report_html(query, rows),
    }


def format_error_email(message: str, trace: str = "") -> Dict[str, str]:
    """Format error report email (subject + html)."""
    return {"subject": ERROR_SUBJECT, "html": get_error_html(message, trace)}
