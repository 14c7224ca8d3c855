"""
Metric Aggregator for snapshot documents.

Combines campaign and flow events into one event frame and computes:
- Date range over dated events (whole days)
- Totals and derived rates (emailPerformance)
- Audience overview from subscribers
- Per-flow and per-campaign rollups
- Day-of-week (0=Sunday..6=Saturday) and hour-of-day buckets

Only events with a parseable sentAt feed any aggregate. Undated events are
dropped up front, so they cannot move the date range, the totals, the rollups
or the time buckets.

Derived Rates (0-100 percentages unless noted):
    openRate = uniqueOpens / emailsSent * 100
    clickRate = uniqueClicks / emailsSent * 100
    clickToOpenRate = uniqueClicks / uniqueOpens * 100
    conversionRate = totalOrders / uniqueClicks * 100
    revenuePerEmail = revenue / emailsSent (currency)
    avgOrderValue = revenue / totalOrders (currency)
    unsubscribeRate = unsubscribes / emailsSent * 100
    spamRate = spamComplaints / emailsSent * 100
    bounceRate = bounces / emailsSent * 100

Every rate is 0 when its denominator is 0.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from emailmetrics.models import (
    AudienceOverview,
    CampaignRollupItem,
    CampaignsSection,
    CanonicalEmailEvent,
    DateRange,
    DerivedRates,
    DowBucket,
    EmailCategory,
    EmailPerformance,
    EmailTotals,
    FlowRollupItem,
    FlowsSection,
    HourBucket,
    SnapshotSection,
    Subscriber,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_CAMPAIGN_TOP_N: int = 25

# Columns summed into EmailTotals
COUNT_COLUMNS: List[str] = [
    'emailsSent',
    'totalOrders',
    'uniqueOpens',
    'uniqueClicks',
    'unsubscribes',
    'spamComplaints',
    'bounces',
]

EVENT_COLUMNS: List[str] = ['category', 'name', 'sentAt', 'revenue'] + COUNT_COLUMNS

# "Subscribed" as a whole word: rejects UNSUBSCRIBED and NEVER_SUBSCRIBED
SUBSCRIBED_RE = re.compile(r'\bsubscribed\b', re.IGNORECASE)

# Buckets accumulate these event columns under these output names
BUCKET_FIELDS = {'revenue': 'revenue', 'emailsSent': 'emailsSent', 'totalOrders': 'orders'}


# =============================================================================
# Result Data Class
# =============================================================================


@dataclass
class AggregateResult:
    """
    Everything the aggregator computed for one snapshot.

    Optional sections are None when their backing data is empty. ``sections``
    lists the present ones in document order.
    """
    date_range: DateRange
    has_dated_events: bool
    audience_overview: Optional[AudienceOverview] = None
    email_performance: Optional[EmailPerformance] = None
    flows: Optional[FlowsSection] = None
    campaigns: Optional[CampaignsSection] = None
    dow: Optional[List[DowBucket]] = None
    hour: Optional[List[HourBucket]] = None
    sections: List[str] = field(default_factory=list)


# =============================================================================
# Frame Construction
# =============================================================================


def build_event_frame(events: Sequence[CanonicalEmailEvent]) -> pd.DataFrame:
    """
    Build a DataFrame of dated events.

    Events without sentAt are dropped. sentAt is normalized to UTC.

    Args:
        events: Campaign and flow events in any order.

    Returns:
        DataFrame with EVENT_COLUMNS, possibly empty.
    """
    rows = [e.model_dump() for e in events if e.sentAt is not None]
    dropped = len(events) - len(rows)
    if dropped:
        logger.debug(f"Dropped {dropped} undated events before aggregation")

    if not rows:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
    df['category'] = df['category'].map(lambda c: EmailCategory(c).value)
    df['sentAt'] = pd.to_datetime(df['sentAt'], utc=True)
    df['revenue'] = df['revenue'].astype(float)
    for column in COUNT_COLUMNS:
        df[column] = df[column].astype(np.int64)
    return df


# =============================================================================
# Rate Calculations
# =============================================================================


def safe_ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    """Return numerator / denominator * scale, or 0.0 when the denominator is 0."""
    if not denominator:
        return 0.0
    value = numerator / denominator * scale
    return float(value) if np.isfinite(value) else 0.0


def calculate_derived_rates(totals: EmailTotals) -> DerivedRates:
    """
    Derive rates from totals.

    Example:
        >>> totals = EmailTotals(revenue=100.0, emailsSent=50, uniqueOpens=10)
        >>> calculate_derived_rates(totals).openRate
        20.0
    """
    sent = totals.emailsSent
    return DerivedRates(
        openRate=safe_ratio(totals.uniqueOpens, sent, 100.0),
        clickRate=safe_ratio(totals.uniqueClicks, sent, 100.0),
        clickToOpenRate=safe_ratio(totals.uniqueClicks, totals.uniqueOpens, 100.0),
        conversionRate=safe_ratio(totals.totalOrders, totals.uniqueClicks, 100.0),
        revenuePerEmail=safe_ratio(totals.revenue, sent),
        avgOrderValue=safe_ratio(totals.revenue, totals.totalOrders),
        unsubscribeRate=safe_ratio(totals.unsubscribes, sent, 100.0),
        spamRate=safe_ratio(totals.spamComplaints, sent, 100.0),
        bounceRate=safe_ratio(totals.bounces, sent, 100.0),
    )


def calculate_totals(df: pd.DataFrame) -> EmailTotals:
    """Sum revenue and counts over every row of the event frame."""
    if df.empty:
        return EmailTotals()
    sums = df[['revenue'] + COUNT_COLUMNS].sum()
    return EmailTotals(
        revenue=float(sums['revenue']),
        **{column: int(sums[column]) for column in COUNT_COLUMNS},
    )


# =============================================================================
# Section Builders
# =============================================================================


def compute_date_range(df: pd.DataFrame, today: Optional[date] = None) -> DateRange:
    """
    Whole-day range spanned by the dated events.

    An empty frame yields a single-day range on ``today`` (UTC by default).
    """
    if df.empty:
        day = (today or datetime.now(timezone.utc).date()).isoformat()
        return DateRange(start=day, end=day)
    return DateRange(
        start=df['sentAt'].min().date().isoformat(),
        end=df['sentAt'].max().date().isoformat(),
    )


def compute_audience_overview(subscribers: Sequence[Subscriber]) -> Optional[AudienceOverview]:
    if not subscribers:
        return None
    total = len(subscribers)
    subscribed = sum(1 for s in subscribers if SUBSCRIBED_RE.search(s.consentStatus or ''))
    return AudienceOverview(
        totalSubscribers=total,
        subscribedCount=subscribed,
        unsubscribedCount=total - subscribed,
        percentSubscribed=round(subscribed / total * 100, 2),
    )


def compute_flow_rollup(df: pd.DataFrame) -> Optional[FlowsSection]:
    """
    Group flow rows by name, summing delivered and revenue.

    Sorted by revenue descending, ties broken by name.
    """
    flows = df[df['category'] == EmailCategory.FLOW.value]
    if flows.empty:
        return None

    grouped = (
        flows.groupby('name', sort=False)
        .agg(emails=('emailsSent', 'sum'), revenue=('revenue', 'sum'))
        .reset_index()
        .sort_values(['revenue', 'name'], ascending=[False, True], kind='mergesort')
    )
    return FlowsSection(
        totalFlowEmails=len(flows),
        flowNames=[
            FlowRollupItem(name=row.name, emails=int(row.emails), revenue=float(row.revenue))
            for row in grouped.itertuples(index=False)
        ],
    )


def compute_campaign_rollup(df: pd.DataFrame, top_n: int = DEFAULT_CAMPAIGN_TOP_N) -> Optional[CampaignsSection]:
    """Top campaigns by revenue (stable for equal revenue)."""
    campaigns = df[df['category'] == EmailCategory.CAMPAIGN.value]
    if campaigns.empty:
        return None

    top = campaigns.sort_values('revenue', ascending=False, kind='mergesort').head(top_n)
    return CampaignsSection(
        totalCampaigns=len(campaigns),
        topByRevenue=[
            CampaignRollupItem(name=row.name, revenue=float(row.revenue), emailsSent=int(row.emailsSent))
            for row in top.itertuples(index=False)
        ],
    )


def _bucket_sums(df: pd.DataFrame, keys: pd.Series, size: int) -> pd.DataFrame:
    sums = (
        df[list(BUCKET_FIELDS)]
        .groupby(keys)
        .sum()
        .reindex(range(size), fill_value=0)
        .rename(columns=BUCKET_FIELDS)
    )
    return sums


def compute_time_buckets(df: pd.DataFrame, tz_name: str = 'UTC'):
    """
    Day-of-week and hour-of-day buckets in the reporting timezone.

    Returns:
        Tuple of (7 DowBucket, 24 HourBucket), or (None, None) for an empty frame.
    """
    if df.empty:
        return None, None

    local = df['sentAt'].dt.tz_convert(tz_name)
    # pandas counts Monday as 0; buckets count Sunday as 0
    dow_keys = ((local.dt.dayofweek + 1) % 7).rename('bucket')
    hour_keys = local.dt.hour.rename('bucket')

    dow_sums = _bucket_sums(df, dow_keys, 7)
    hour_sums = _bucket_sums(df, hour_keys, 24)

    dow = [
        DowBucket(dow=int(i), revenue=float(r.revenue), emailsSent=int(r.emailsSent), orders=int(r.orders))
        for i, r in dow_sums.iterrows()
    ]
    hour = [
        HourBucket(hour=int(i), revenue=float(r.revenue), emailsSent=int(r.emailsSent), orders=int(r.orders))
        for i, r in hour_sums.iterrows()
    ]
    return dow, hour


# =============================================================================
# Entry Point
# =============================================================================


def aggregate(
    events: Sequence[CanonicalEmailEvent],
    subscribers: Sequence[Subscriber],
    campaign_top_n: int = DEFAULT_CAMPAIGN_TOP_N,
    report_timezone: str = 'UTC',
    today: Optional[date] = None,
) -> AggregateResult:
    """
    Aggregate campaign and flow events plus subscribers into snapshot sections.

    Args:
        events: Campaign and flow events (undated ones are ignored).
        subscribers: Parsed subscriber rows.
        campaign_top_n: Number of campaigns kept in topByRevenue.
        report_timezone: IANA timezone for day-of-week / hour buckets.
        today: Day used for the range when no dated event exists.

    Returns:
        AggregateResult; never raises for data-quality issues.

    Example:
        >>> result = aggregate(events, subscribers)
        >>> result.sections
        ['audienceOverview', 'emailPerformance', 'flows', 'campaigns', 'dow', 'hour']
    """
    df = build_event_frame(events)
    has_dated = not df.empty

    result = AggregateResult(
        date_range=compute_date_range(df, today),
        has_dated_events=has_dated,
        audience_overview=compute_audience_overview(subscribers),
    )

    if has_dated:
        totals = calculate_totals(df)
        result.email_performance = EmailPerformance(totals=totals, derived=calculate_derived_rates(totals))
        result.flows = compute_flow_rollup(df)
        result.campaigns = compute_campaign_rollup(df, campaign_top_n)
        result.dow, result.hour = compute_time_buckets(df, report_timezone)

    present = {
        SnapshotSection.AUDIENCE_OVERVIEW: result.audience_overview,
        SnapshotSection.EMAIL_PERFORMANCE: result.email_performance,
        SnapshotSection.FLOWS: result.flows,
        SnapshotSection.CAMPAIGNS: result.campaigns,
        SnapshotSection.DOW: result.dow,
        SnapshotSection.HOUR: result.hour,
    }
    result.sections = [section.value for section in SnapshotSection if present[section] is not None]

    logger.info(
        f"Aggregated {len(df)} dated events and {len(subscribers)} subscribers "
        f"({result.date_range.start}..{result.date_range.end}), sections={result.sections}"
    )
    return result
