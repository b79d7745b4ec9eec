"""
Analytics Aggregation

DESIGN DECISION: The monthly summary is a pure function of the receipts
and an evaluation instant. The service around it only decides WHEN to
recompute (on every repository notification) and WHICH instant to use
(the wall clock).

GUARANTEES:
- All money arithmetic is Decimal, so totals are exact
- A month with no receipts has NO summary (None), never a zero summary
- Summaries are rebuilt from scratch; nothing is patched incrementally
"""

import asyncio
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import structlog

from ahorro.audit import AuditLogger
from ahorro.models.analytics import AnalyticsSummary, CategoryBreakdown, DailySpend
from ahorro.models.receipt import Receipt, ReceiptCategory
from ahorro.repository import ChangeNotification, ReceiptRepository
from ahorro.utils.dates import ensure_aware, in_timezone_of, now_local, start_of_month


logger = structlog.get_logger(__name__)


SummaryCallback = Callable[[Optional[AnalyticsSummary]], None]


def build_summary(
    receipts: Iterable[Receipt],
    evaluation_instant: datetime,
) -> Optional[AnalyticsSummary]:
    """
    Summarise the receipts purchased in ``evaluation_instant``'s month.

    Months and days are read on the evaluation instant's wall clock.

    Returns:
        The summary, or None if no receipt falls in that month
    """
    evaluation_instant = ensure_aware(evaluation_instant)

    in_month: list[tuple[Receipt, datetime]] = []
    for receipt in receipts:
        local = in_timezone_of(receipt.purchase_date, evaluation_instant)
        if (local.year, local.month) == (evaluation_instant.year, evaluation_instant.month):
            in_month.append((receipt, local))

    if not in_month:
        return None

    total_spent = Decimal(0)
    tax_paid = Decimal(0)
    by_category: dict[ReceiptCategory, list[Decimal]] = {}
    by_day: dict[date, Decimal] = {}
    keywords: Counter[str] = Counter()

    for receipt, local in in_month:
        total_spent += receipt.amount
        tax_paid += receipt.tax_amount or Decimal(0)
        by_category.setdefault(receipt.category, []).append(receipt.amount)
        by_day[local.date()] = by_day.get(local.date(), Decimal(0)) + receipt.amount
        keywords.update(receipt.keywords)

    breakdown = [
        CategoryBreakdown(
            category=category,
            total=sum(amounts, Decimal(0)),
            transaction_count=len(amounts),
        )
        for category, amounts in by_category.items()
    ]
    # sorted() is stable: equal totals keep first-seen order
    breakdown.sort(key=lambda item: item.total, reverse=True)

    return AnalyticsSummary(
        month=start_of_month(evaluation_instant),
        total_spent=total_spent,
        tax_paid=tax_paid,
        category_breakdown=tuple(breakdown),
        daily_spending=tuple(
            DailySpend(day=day, total=by_day[day]) for day in sorted(by_day)
        ),
        keywords=dict(keywords),
    )


class ReceiptAnalyticsService:
    """
    Keeps the current month's summary in step with the repository.

    Flow:
    1. Repository publishes a snapshot
    2. The service recomputes the summary at ``clock()``
    3. Summary callbacks receive the new value (None when absent)

    With ``offload=True`` and a running event loop, recomputes run in a
    worker thread. Each notification bumps a generation counter and only
    the latest generation's result is kept.
    """

    def __init__(
        self,
        repository: Optional[ReceiptRepository] = None,
        clock: Callable[[], datetime] = now_local,
        offload: bool = False,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._clock = clock
        self._offload = offload
        self._audit = audit_logger or AuditLogger()
        self._summary: Optional[AnalyticsSummary] = None
        self._generation = 0
        self._callbacks: list[SummaryCallback] = []
        self._pending: set[asyncio.Task] = set()
        self._unsubscribe = repository.subscribe(self.on_change) if repository is not None else None

    # =========================================================================
    # READS
    # =========================================================================

    @property
    def monthly_summary(self) -> Optional[AnalyticsSummary]:
        return self._summary

    @property
    def recent_spending(self) -> tuple[DailySpend, ...]:
        """Daily series of the current summary; empty when there is none."""
        if self._summary is None:
            return ()
        return self._summary.daily_spending

    @property
    def generation(self) -> int:
        return self._generation

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(self, callback: SummaryCallback) -> Callable[[], None]:
        """Register ``callback`` for summary changes. Returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def close(self) -> None:
        """Stop following the repository and drop pending recomputes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._pending):
            task.cancel()

    async def wait_idle(self) -> None:
        """Wait for offloaded recomputes that are still running."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # RECOMPUTE
    # =========================================================================

    def on_change(self, notification: ChangeNotification) -> None:
        self._generation += 1
        generation = self._generation
        receipts = notification.receipts

        if self._offload:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                task = loop.create_task(self._recompute_in_worker(generation, receipts))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
                return

        self._apply(generation, build_summary(receipts, self._clock()), len(receipts))

    async def _recompute_in_worker(
        self,
        generation: int,
        receipts: tuple[Receipt, ...],
    ) -> None:
        summary = await asyncio.to_thread(build_summary, receipts, self._clock())
        self._apply(generation, summary, len(receipts))

    def _apply(
        self,
        generation: int,
        summary: Optional[AnalyticsSummary],
        receipt_count: int,
    ) -> None:
        if generation != self._generation:
            logger.debug(
                "stale_summary_discarded",
                generation=generation,
                latest=self._generation,
            )
            return

        self._summary = summary
        self._audit.log_summary_recomputed(
            month=summary.month.strftime("%Y-%m") if summary else None,
            receipt_count=receipt_count,
        )
        for callback in list(self._callbacks):
            try:
                callback(summary)
            except Exception:
                logger.exception("summary_callback_failed", generation=generation)
