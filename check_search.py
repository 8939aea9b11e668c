#!/usr/bin/env python3
"""Quick check of RumbleOn search results (no email is sent)."""

import sys
import json

from tracker_common import load_config, SearchFailure, RenderFailure
from rumbleon_query import build_search_payload
from rumbleon_tracker import search_rumbleon, split_search_terms
from email_templates import parse_hit, format_number, days_left

USAGE = "Usage: check_search.py [--payload] <search>[,<search>...]"


def main(argv=None):
    args = sys.argv[1:] if argv is None else list(argv)
    show_payload = "--payload" in args
    args = [a for a in args if a != "--payload"]
    if not args or not args[0]:
        print(USAGE, file=sys.stderr)
        return 1
    terms = split_search_terms(args[0])

    if show_payload:
        for term in terms:
            print(json.dumps(build_search_payload(term), indent=2))
        return 0

    print("=" * 50)
    print("RumbleOn Search Check")
    print("=" * 50)

    config = load_config()
    token = config.get("rumbleon_token")
    if not token:
        print("ERROR: Missing rumbleon_token (set RUMBLEON_TOKEN)")
        return 1

    for term in terms:
        try:
            hits = search_rumbleon(token, term)
        except SearchFailure as e:
            print(f"\nAPI Error: {e}")
            return 1

        print(f"\n--- '{term}': {len(hits)} hit(s) ---")
        for hit in hits:
            item = parse_hit(hit)
            try:
                price = format_number(item["price"], "price")
                days = days_left(item["retailSiteEndTime"])
            except RenderFailure as e:
                print(f"  [{item['vin']}] {item['title']} -- {e}")
                continue
            print(f"  [{item['vin']}] {item['title']} | ${price} | {days} days left")

    return 0


if __name__ == "__main__":
    sys.exit(main())
