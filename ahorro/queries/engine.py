"""
Query Resolution Engine

DESIGN DECISION: Query resolution is DETERMINISTIC.
A free-text prompt is turned into tokens and structured filters with
plain heuristics (category names, Spanish month names), then evaluated
against the latest repository snapshot. No model is involved, so the
same prompt over the same receipts always gives the same answer.

MATCHING RULE: a receipt is included when ALL its tokens appear in the
receipt's text OR it satisfies ALL the filters. The OR is deliberate:
"gastos de enero" matches January receipts even though "gastos" appears
in none of them. The price is that a prompt yielding no filters (or no
usable tokens) matches everything, since an empty condition holds
vacuously.
"""

import re
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import structlog
from pydantic import TypeAdapter, ValidationError

from ahorro.audit import AuditLogger
from ahorro.models.query import FilterKind, QueryFilter, QueryResolution, ReceiptQuery
from ahorro.models.receipt import Receipt, ReceiptCategory
from ahorro.repository import ChangeNotification, ReceiptRepository
from ahorro.utils.dates import ensure_aware, month_bounds, now_local


logger = structlog.get_logger(__name__)


SPANISH_MONTHS = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)

_WORD = re.compile(r"\w+")

# RFC 3339 parsing, including the "Z" suffix
_INSTANT = TypeAdapter(datetime)


# =============================================================================
# PROMPT ANALYSIS
# =============================================================================

def tokenize(prompt: str) -> list[str]:
    """Lowercase word tokens longer than two characters."""
    return [token for token in _WORD.findall(prompt.lower()) if len(token) > 2]


def extract_filters(prompt: str, now: datetime) -> list[QueryFilter]:
    """
    Derive category and date-range filters from a prompt.

    Month names resolve to that month of ``now``'s year, in ``now``'s
    timezone. Keyword, merchant and amount filters are never derived.
    """
    text = prompt.lower()
    filters: list[QueryFilter] = []

    for category in ReceiptCategory:
        if category.display_title.lower() in text or category.value in text:
            filters.append(QueryFilter(kind=FilterKind.CATEGORY, value=category.value))

    now = ensure_aware(now)
    for month, name in enumerate(SPANISH_MONTHS, start=1):
        if name in text:
            start, end = month_bounds(now.year, month, now)
            filters.append(QueryFilter(
                kind=FilterKind.DATE_RANGE,
                value=f"{start.isoformat()}|{end.isoformat()}",
            ))

    return filters


# =============================================================================
# MATCHING
# =============================================================================

def haystack(receipt: Receipt) -> str:
    """Lowercase searchable text of a receipt."""
    parts = [
        " ".join(receipt.keywords),
        " ".join(receipt.tags),
        receipt.title,
        receipt.merchant_name,
        receipt.description or "",
    ]
    return " ".join(parts).lower()


def matches_tokens(receipt: Receipt, tokens: Sequence[str]) -> bool:
    text = haystack(receipt)
    return all(token in text for token in tokens)


def matches_filter(receipt: Receipt, query_filter: QueryFilter) -> bool:
    """
    Evaluate one filter. Malformed range payloads match everything.
    """
    value = query_filter.value

    if query_filter.kind == FilterKind.KEYWORD:
        needle = value.lower()
        return any(needle in keyword.lower() for keyword in receipt.keywords)

    if query_filter.kind == FilterKind.CATEGORY:
        return receipt.category.value == value

    if query_filter.kind == FilterKind.MERCHANT:
        return value.lower() in receipt.merchant_name.lower()

    if query_filter.kind == FilterKind.AMOUNT_RANGE:
        low, sep, high = value.partition("-")
        try:
            if not sep:
                raise InvalidOperation(value)
            lower, upper = Decimal(low.strip()), Decimal(high.strip())
        except InvalidOperation:
            return True
        return lower <= receipt.amount <= upper

    if query_filter.kind == FilterKind.DATE_RANGE:
        start_text, sep, end_text = value.partition("|")
        try:
            if not sep:
                raise ValueError(value)
            start = ensure_aware(_INSTANT.validate_python(start_text.strip()))
            end = ensure_aware(_INSTANT.validate_python(end_text.strip()))
        except (ValidationError, ValueError):
            return True
        return start <= receipt.purchase_date <= end

    return True


def matches_filters(receipt: Receipt, filters: Iterable[QueryFilter]) -> bool:
    return all(matches_filter(receipt, f) for f in filters)


def sort_newest_first(receipts: Iterable[Receipt]) -> list[Receipt]:
    """Descending purchase date; ties keep their input order."""
    return sorted(receipts, key=lambda r: r.purchase_date, reverse=True)


def search(receipts: Iterable[Receipt], query: ReceiptQuery) -> list[Receipt]:
    """Evaluate ``query`` over ``receipts`` and order the matches."""
    tokens = tokenize(query.prompt)
    return sort_newest_first(
        r for r in receipts
        if matches_tokens(r, tokens) or matches_filters(r, query.filters)
    )


def group_by_category(
    receipts: Iterable[Receipt],
    search: str = "",
) -> dict[ReceiptCategory, list[Receipt]]:
    """
    Group receipts by category, newest first within each group.

    A non-blank ``search`` keeps only receipts whose title, merchant or
    keywords contain it, case-insensitively.
    """
    needle = search.strip().lower()
    if needle:
        receipts = [
            r for r in receipts
            if needle in r.title.lower()
            or needle in r.merchant_name.lower()
            or any(needle in keyword.lower() for keyword in r.keywords)
        ]

    grouped: dict[ReceiptCategory, list[Receipt]] = {}
    for receipt in receipts:
        grouped.setdefault(receipt.category, []).append(receipt)

    return {
        category: sort_newest_first(grouped[category])
        for category in ReceiptCategory
        if category in grouped
    }


# =============================================================================
# ENGINE
# =============================================================================

class ReceiptQueryEngine:
    """
    Resolves prompts against the latest published receipt snapshot.

    GUARANTEES:
    - Only returns receipts that exist in the snapshot
    - Never raises on data: no match is an empty result
    """

    def __init__(
        self,
        repository: Optional[ReceiptRepository] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._audit = audit_logger or AuditLogger()
        self._receipts: tuple[Receipt, ...] = ()
        self.last_query: Optional[ReceiptQuery] = None
        self.last_results: tuple[Receipt, ...] = ()
        self._unsubscribe = repository.subscribe(self.on_change) if repository is not None else None

    @property
    def receipts(self) -> tuple[Receipt, ...]:
        return self._receipts

    def on_change(self, notification: ChangeNotification) -> None:
        self._receipts = notification.receipts

    def close(self) -> None:
        """Stop following the repository."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def build_query(self, prompt: str, now: Optional[datetime] = None) -> ReceiptQuery:
        now = now or now_local()
        return ReceiptQuery(
            prompt=prompt,
            created_at=now,
            filters=tuple(extract_filters(prompt, now)),
        )

    def search(self, query: ReceiptQuery) -> list[Receipt]:
        """Run a structured query over the current snapshot."""
        return search(self._receipts, query)

    def resolve(self, prompt: str, now: Optional[datetime] = None) -> QueryResolution:
        """
        Turn a free-text prompt into a query and evaluate it.

        Args:
            prompt: The user's question
            now: Evaluation instant for month names (defaults to now)
        """
        query = self.build_query(prompt, now)
        results = tuple(self.search(query))

        self.last_query = query
        self.last_results = results
        self._audit.log_query_resolved(
            query_id=query.id,
            filter_count=len(query.filters),
            result_count=len(results),
        )
        return QueryResolution(query=query, results=results)
