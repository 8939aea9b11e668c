# -*- coding: utf-8 -*-
"""
RumbleOn Search Payload
=======================
Builds the request body sent to the RumbleOn consumer inventory index.

The shape mirrors what the rumbleon.com storefront sends, so results, facets
and ranking match what a buyer sees on the site. Everything except the search
text is fixed.
"""
from typing import Any, Dict, List

__version__ = "1.0.0"

# Result shaping
RESULT_SIZE = 52
SORT_ORDER = [{"_score": "desc"}]

# Fields searched with the all-tokens-must-match query
SIMPLE_QUERY_FIELDS = [
    "title",
    "vin",
    "category",
    "stdExteriorColors",
    "stockNo",
    "keywords",
]

# Fields searched with the phrase-prefix query (search-as-you-type)
PHRASE_PREFIX_FIELDS = [
    "title",
    "category",
    "stdExteriorColors",
    "keywords",
]

# Fields returned for each hit (keeps the response small)
SOURCE_FIELDS = [
    "title",
    "stdMake",
    "stdModel",
    "stdExteriorColors",
    "vin",
    "make",
    "model",
    "exteriorColor",
    "price",
    "year",
    "category",
    "mileage",
    "imageUrl",
    "stockNo",
    "statusOrder",
    "isOnHold",
    "dealerId",
    "isRumbleOnBike",
    "waterMarkText",
    "listingType",
    "retailSiteEndTime",
    "keywords",
    "id",
]

# (label, from, to) - None means open-ended
MILEAGE_RANGES = [
    ("All", None, None),
    ("From 0 to 5K Miles", 0, 5000),
    ("From 5K to 10K Miles", 5000, 10000),
    ("From 10K to 20K Miles", 10000, 20000),
    ("From 20K to 30K Miles", 20000, 30000),
    ("From 30K to 40K Miles", 30000, 40000),
    ("From 40K to 50K Miles", 40000, 50000),
    ("From 50K to 60K Miles", 50000, 60000),
]

# Phrase suggester tuning ("did you mean")
SUGGEST_FIELD = "model"
SUGGEST_ERROR_LIKELIHOOD = 0.95
SUGGEST_MAX_ERRORS = 1
SUGGEST_GRAM_SIZE = 4

HIGHLIGHT_FIELDS = ["make", "year"]


def _match_all_filter(aggs: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap sub-aggregations in the unfiltered bucket the storefront uses."""
    return {"filter": {"match_all": {}}, "aggs": aggs}


def _terms_with_count(field: str, size: int, order: Dict[str, str] = None) -> Dict[str, Any]:
    """Terms facet plus a distinct-value count, keyed the way the index expects."""
    terms: Dict[str, Any] = {"field": field, "size": size}
    if order:
        terms["order"] = order
    return _match_all_filter({
        field: {"terms": terms},
        f"{field}_count": {"cardinality": {"field": field}},
    })


def _stats(field: str) -> Dict[str, Any]:
    return _match_all_filter({field: {"stats": {"field": field}}})


def _mileage_ranges() -> List[Dict[str, Any]]:
    ranges = []
    for key, low, high in MILEAGE_RANGES:
        bucket: Dict[str, Any] = {"key": key}
        if low is not None:
            bucket["from"] = low
        if high is not None:
            bucket["to"] = high
        ranges.append(bucket)
    return ranges


def build_query(search_term: str) -> Dict[str, Any]:
    """Two alternative matches, either one is enough (bool/should)."""
    return {
        "bool": {
            "should": [
                {
                    "simple_query_string": {
                        "query": search_term,
                        "fields": list(SIMPLE_QUERY_FIELDS),
                        "analyzer": "standard",
                        "default_operator": "AND",
                        "minimum_should_match": "100%",
                    }
                },
                {
                    "multi_match": {
                        "query": search_term,
                        "type": "phrase_prefix",
                        "fields": list(PHRASE_PREFIX_FIELDS),
                    }
                },
            ]
        }
    }


def build_aggregations() -> Dict[str, Any]:
    """
    Facet definitions shown next to results on the storefront.

    Names (category3, mileage7, statusOrder_v29, ...) are the ones the index
    was built against and must not change.
    """
    return {
        "category3": _terms_with_count("category.keyword", 50),
        "year": _stats("year"),
        "stdMake": _match_all_filter({
            "stdMake.keyword": _match_all_filter({
                "stdMake.keyword": {
                    "terms": {"field": "stdMake.keyword", "size": 100}
                }
            })
        }),
        "price": _stats("price"),
        "mileage7": _match_all_filter({
            "mileage": {
                "range": {"field": "mileage", "ranges": _mileage_ranges()}
            }
        }),
        "exteriorColor8": _terms_with_count("stdExteriorColors.keyword", 10),
        "statusOrder_v29": _terms_with_count("listingType.keyword", 50, order={"_term": "asc"}),
        "isOnHold10": _terms_with_count("isOnHold", 50),
    }


def build_suggest(search_term: str) -> Dict[str, Any]:
    return {
        "text": search_term,
        "suggestions": {
            "phrase": {
                "field": SUGGEST_FIELD,
                "real_word_error_likelihood": SUGGEST_ERROR_LIKELIHOOD,
                "max_errors": SUGGEST_MAX_ERRORS,
                "gram_size": SUGGEST_GRAM_SIZE,
                "direct_generator": [
                    {
                        "field": SUGGEST_FIELD,
                        "suggest_mode": "always",
                        "min_word_length": 1,
                    }
                ],
            }
        },
    }


def build_search_payload(search_term: str) -> Dict[str, Any]:
    """
    Build the full _search request body for one search term.

    The term is used as-is (no trimming or case folding). Each call returns a
    new dict, so callers may modify the result freely.

    Args:
        search_term: Text typed into the RumbleOn search box

    Returns:
        JSON-serialisable request body
    """
    return {
        "query": build_query(search_term),
        "aggs": build_aggregations(),
        "size": RESULT_SIZE,
        "sort": [dict(s) for s in SORT_ORDER],
        "highlight": {"fields": {field: {} for field in HIGHLIGHT_FIELDS}},
        "suggest": build_suggest(search_term),
        "_source": list(SOURCE_FIELDS),
    }
