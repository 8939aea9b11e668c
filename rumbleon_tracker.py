#!/usr/bin/env python3
"""
RumbleOn Tracker - Motorcycle Listing Notification Service
Searches the RumbleOn inventory for one or more terms and emails the matches.

Usage:
    rumbleon_tracker.py "<search>[,<search>...]"

Each comma-separated part is searched separately (all at once); the combined
results go out as one HTML email through Mailgun. If anything fails, an error
report is emailed instead and the process exits with status 1.

Run it from cron (or Task Scheduler) for a daily digest. See README.md.
"""
import sys
if sys.version_info < (3, 9):
    sys.exit("RumbleOn Tracker requires Python 3.9+ (asyncio.to_thread)")

VERSION = "2.1.0"
__version__ = VERSION
# v2.1.0: Error report send failure is logged instead of crashing the run
# v2.0.1: Timeouts on search and Mailgun requests
# v2.0.0: Concurrent searches for comma-separated terms (asyncio + thread pool)
# v1.0.0: Initial release

import time
import asyncio
import traceback
import requests
from datetime import datetime
from typing import Dict, List, Any, Optional, Tuple

from tracker_common import (
    # Constants
    RUMBLEON_SEARCH_URL,
    # Errors
    SearchFailure, SendFailure,
    # Functions
    log, rotate_logs, format_duration,
    load_config, validate_config, get_mailgun_config,
)
from rumbleon_query import build_search_payload
from email_templates import render_listing_row, format_report_email, format_error_email

# =============================================================================
# [ CONSTANTS ]
# =============================================================================
API_TIMEOUT_SECONDS = 30    # Timeout for RumbleOn search calls
EMAIL_TIMEOUT_SECONDS = 30  # Timeout for Mailgun calls
USAGE = "Usage: rumbleon_tracker.py <search>[,<search>...]"


# =============================================================================
# [ HTTP SESSION ]
# =============================================================================

def get_http_session() -> requests.Session:
    """Create an HTTP session with the tracker's default headers.

    Each search runs in its own worker thread, so sessions are not shared.
    """
    session = requests.Session()
    session.headers.update({
        "User-Agent": f"RumbleOnTracker/{VERSION}",
        "Accept": "application/json",
    })
    return session


# --- API Functions ---

def search_rumbleon(token: str, search_term: str, session: Optional[requests.Session] = None) -> List[Dict[str, Any]]:
    """Run one search against the RumbleOn inventory index.

    Args:
        token: RumbleOn search token (sent as "Authorization: Basic <token>")
        search_term: Text to search for, used as-is
        session: Optional session to send the request with

    Returns:
        Hits in the order the index ranked them (response hits.hits)

    Raises:
        SearchFailure: on connection errors, non-2xx status or unexpected response
    """
    payload = build_search_payload(search_term)
    headers = {"Authorization": f"Basic {token}"}
    http = session if session is not None else get_http_session()

    try:
        resp = http.post(RUMBLEON_SEARCH_URL, json=payload, headers=headers, timeout=API_TIMEOUT_SECONDS)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise SearchFailure(f"Search '{search_term}' failed: {e}") from e
    finally:
        if session is None:
            http.close()

    try:
        hits = data["hits"]["hits"]
    except (KeyError, TypeError) as e:
        raise SearchFailure(f"Search '{search_term}' returned unexpected response (no hits.hits)") from e
    if not isinstance(hits, list):
        raise SearchFailure(f"Search '{search_term}' returned unexpected response (hits.hits is {type(hits).__name__})")

    log(f"Search '{search_term}': {len(hits)} hit(s)")
    return hits


def split_search_terms(query: str) -> List[str]:
    """Split the command-line query on commas. Parts are not trimmed."""
    return query.split(",")


async def search_all(token: str, terms: List[str]) -> List[Dict[str, Any]]:
    """Search every term concurrently and flatten the results.

    Order is term order, then hit order within each term. If any search
    fails the whole call fails with that error.
    """
    results = await asyncio.gather(
        *(asyncio.to_thread(search_rumbleon, token, term) for term in terms)
    )
    return [hit for hits in results for hit in hits]


# --- Email ---

def _provider_message(resp: requests.Response) -> str:
    """Best-effort error text from a Mailgun response."""
    try:
        data = resp.json()
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
    except ValueError:
        pass
    return resp.text[:200] or resp.reason or "no response body"


def send_email_core(config: Dict[str, Any], message: Dict[str, str], session: Optional[requests.Session] = None) -> Dict[str, Any]:
    """Send an email through the Mailgun messages API.

    Args:
        config: Tracker config (mailgun_api_key, mailgun_domain, destination_email)
        message: Fields to send (subject, html); "from"/"to" here override the defaults
        session: Optional session to send the request with

    Returns:
        Mailgun response body (id, message)

    Raises:
        SendFailure: Mailgun unreachable or returned an error
    """
    mg = get_mailgun_config(config)
    fields = {"from": mg['sender'], "to": mg['recipient']}
    fields.update(message)

    http = session if session is not None else get_http_session()
    try:
        resp = http.post(
            mg['messages_url'],
            auth=("api", mg['api_key']),
            data=fields,
            timeout=EMAIL_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise SendFailure(f"Mailgun request failed: {e}") from e
    finally:
        if session is None:
            http.close()

    if not resp.ok:
        raise SendFailure(f"Mailgun error {resp.status_code}: {_provider_message(resp)}")

    try:
        body = resp.json()
    except ValueError:
        body = {"message": resp.text}
    if not isinstance(body, dict):
        body = {"message": body}

    log(f"Email sent: {fields.get('subject', '')} (id: {body.get('id', '?')})")
    return body


def send_error_report(config: Dict[str, Any], error: BaseException) -> Dict[str, str]:
    """Email an error report for a failed run.

    A failure here is only logged, so the original error stays visible in
    the log and the exit status.
    """
    trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    report = format_error_email(str(error), trace)
    try:
        send_email_core(config, report)
    except Exception as send_err:
        log(f"ERROR: Could not send error report: {send_err}")
    return report


# --- Main Run ---

def build_report(query: str, hits: List[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, str]:
    """Render every hit and compose the listings email (subject + html)."""
    rows = [render_listing_row(hit, now) for hit in hits]
    return format_report_email(query, rows)


def run_tracker(query: str, config: Dict[str, Any], now: Optional[datetime] = None) -> Tuple[bool, Dict[str, str]]:
    """Search, render and email the results for one query.

    Args:
        query: Raw search string, comma-separated for multiple searches
        config: Tracker config from load_config()
        now: Reference time for days-left countdowns (defaults to now)

    Returns:
        (ok, report) - the listings email on success, the error report otherwise
    """
    start_time = time.time()
    token = config.get("rumbleon_token", "")

    try:
        terms = split_search_terms(query)
        log(f"Searching RumbleOn: {len(terms)} term(s) for '{query}'")
        hits = asyncio.run(search_all(token, terms))
        report = build_report(query, hits, now)
        send_email_core(config, report)
    except Exception as e:
        log(f"Error running tracker: {e}")
        return False, send_error_report(config, e)

    log(f"Run complete: {len(hits)} listing(s) emailed in {format_duration(time.time() - start_time)}")
    return True, report


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point. Returns the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args or not args[0]:
        print(USAGE, file=sys.stderr)
        return 1
    query = args[0]

    rotate_logs()
    log("=" * 50)
    log(f"RumbleOn Tracker v{VERSION} starting")
    if len(args) > 1:
        log(f"WARNING: Ignoring extra arguments {args[1:]} (quote multi-word searches)")

    config = load_config()
    is_valid, errors = validate_config(config)
    if not is_valid:
        for err in errors:
            log(f"WARNING: Config: {err}")

    ok, _ = run_tracker(query, config)
    return 0 if ok else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        log("Stopped by user")
        sys.exit(130)
