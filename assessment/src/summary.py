"""Summary engine: fold a score map against a protocol catalog.

Every function here is a pure projection of (catalog, scores). There is
no caching and no shared mutable state, so summaries can be rebuilt at
any time and computed concurrently by read-only callers.

Scoring semantics differ per instrument family and are isolated in a
closed set of summarizer classes sharing one fold:

- PointScaleSummarizer: numeric points (ABLLS-R).
- VBMAPPSummarizer: point scale plus level, barrier and transition
  roll-ups (VB-MAPP).
- AchievementSummarizer: achieved / not achieved with developmental age
  (Portage).
- MasterySummarizer: Absent / Developing / Mastered (Carolina).
- RatingSummarizer: point scale plus a total-score severity band (CARS).

Example::

    summarizer = get_summarizer(ProtocolType.ABLLS_R)
    overall = summarizer.summarize_protocol(protocol, evaluation.scores)
    print(overall.overall_percentage)
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

from catalog.src.models import (
    CategorySection,
    Protocol,
    ProtocolCategory,
    ProtocolItem,
    ProtocolType,
    ScoringScale,
)
from catalog.src.scales import MasteryValue, value_points
from assessment.src.models import (
    BarrierSummary,
    CategorySummary,
    ItemScore,
    LevelSummary,
    OverallSummary,
    SequenceSummary,
    TransitionSummary,
)

ScoreMap = Mapping[str, ItemScore]

SEVERE_BARRIER_THRESHOLD = 3
DOMINANT_LEVEL_THRESHOLD = 50

# (minimum percentage, readiness label), checked in order
READINESS_BANDS: tuple[tuple[int, str], ...] = (
    (80, "ready"),
    (60, "developing"),
    (40, "emerging"),
)

# (minimum CARS total, severity label), checked in order
CARS_SEVERITY_BANDS: tuple[tuple[float, str], ...] = (
    (37, "severe"),
    (30, "mild_moderate"),
)


# ===================================================================
# Arithmetic helpers
# ===================================================================


def round_half_up(value: float | Decimal, places: int = 0) -> Decimal:
    """Round with halves away from zero (62.5 -> 63, 0.25 -> 0.3 at 1 place)."""
    quantum = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def percentage(score: float, max_score: float) -> int:
    """Return round-half-up(score / max * 100), or 0 when max is 0."""
    if not max_score:
        return 0
    ratio = Decimal(str(score)) / Decimal(str(max_score)) * 100
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _clean(number: float) -> float:
    """Render integral sums as int so JSON output stays stable."""
    return int(number) if float(number).is_integer() else number


# ===================================================================
# Summarizers
# ===================================================================


class PointScaleSummarizer:
    """Numeric point scale: each item contributes its score out of its max."""

    scale = ScoringScale.POINTS

    def item_max(self, item: ProtocolItem) -> float:
        """Denominator contribution of a non-N/A item."""
        return item.max_score

    def item_points(self, item: ProtocolItem, value: object) -> float:
        """Numerator contribution of a scored item."""
        return value_points(self.scale, value)

    def summarize_category(
        self, category: ProtocolCategory, scores: ScoreMap
    ) -> CategorySummary:
        """Fold one category's items in catalog order.

        N/A items leave both numerator and denominator. Unscored items
        count toward the denominator only.

        Args:
            category: Catalog category.
            scores: Item id to ItemScore; ids outside the category are ignored.

        Returns:
            The CategorySummary with variant extras filled in.
        """
        total_items = 0
        scored_items = 0
        total_score: float = 0
        max_possible: float = 0
        for item in category.items:
            record = scores.get(item.id)
            if record is not None and record.is_na:
                continue
            total_items += 1
            max_possible += self.item_max(item)
            if record is not None and record.value is not None:
                scored_items += 1
                total_score += self.item_points(item, record.value)

        summary = CategorySummary(
            category_id=category.id,
            category_title=category.title,
            total_items=total_items,
            scored_items=scored_items,
            total_score=_clean(total_score),
            max_possible_score=_clean(max_possible),
            percentage=percentage(total_score, max_possible),
        )
        self._add_category_extras(category, scores, summary)
        return summary

    def summarize_overall(
        self, categories: Iterable[ProtocolCategory], scores: ScoreMap
    ) -> OverallSummary:
        """Summarize every category and sum the results.

        Args:
            categories: Categories to include, in display order.
            scores: The evaluation's score map.

        Returns:
            OverallSummary whose totals are sums over its categories.
        """
        summaries: dict[str, CategorySummary] = {}
        for category in categories:
            summaries[category.id] = self.summarize_category(category, scores)
        overall_score = sum(s.total_score for s in summaries.values())
        overall_max = sum(s.max_possible_score for s in summaries.values())
        overall = OverallSummary(
            category_summaries=summaries,
            overall_score=_clean(overall_score),
            overall_max_score=_clean(overall_max),
            overall_percentage=percentage(overall_score, overall_max),
        )
        self._add_overall_extras(overall)
        return overall

    def summarize_protocol(self, protocol: Protocol, scores: ScoreMap) -> OverallSummary:
        """Summarize a whole protocol. Subclasses may add sections."""
        return self.summarize_overall(protocol.categories, scores)

    def _add_category_extras(
        self, category: ProtocolCategory, scores: ScoreMap, summary: CategorySummary
    ) -> None:
        summary.level = category.level

    def _add_overall_extras(self, overall: OverallSummary) -> None:
        return None


class AchievementSummarizer(PointScaleSummarizer):
    """Achieved / not achieved items with developmental age (Portage)."""

    scale = ScoringScale.ACHIEVEMENT

    def item_max(self, item: ProtocolItem) -> float:
        return 1

    def _add_category_extras(
        self, category: ProtocolCategory, scores: ScoreMap, summary: CategorySummary
    ) -> None:
        summary.developmental_age_months = developmental_age(category, scores)

    def _add_overall_extras(self, overall: OverallSummary) -> None:
        ages = [s.developmental_age_months or 0 for s in overall.category_summaries.values()]
        if not ages:
            overall.developmental_age_months = 0.0
            return
        overall.developmental_age_months = float(round_half_up(sum(ages) / len(ages), 1))


class MasterySummarizer(PointScaleSummarizer):
    """Absent / Developing / Mastered ratings (Carolina).

    Percentage is the mastery ratio: mastered items over non-N/A items.
    """

    scale = ScoringScale.MASTERY

    def item_max(self, item: ProtocolItem) -> float:
        return 1

    def item_points(self, item: ProtocolItem, value: object) -> float:
        return 1 if value == MasteryValue.MASTERED.value else 0

    def _add_category_extras(
        self, category: ProtocolCategory, scores: ScoreMap, summary: CategorySummary
    ) -> None:
        mastered, developing = _mastery_counts(category.items, scores)
        summary.mastered_count = mastered
        summary.developing_count = developing
        summary.sequences = [
            _sequence_summary(seq.id, seq.title, seq.items, scores) for seq in category.sequences
        ]

    def _add_overall_extras(self, overall: OverallSummary) -> None:
        overall.total_mastered = sum(
            s.mastered_count or 0 for s in overall.category_summaries.values()
        )
        overall.total_emerging = sum(
            s.developing_count or 0 for s in overall.category_summaries.values()
        )


class VBMAPPSummarizer(PointScaleSummarizer):
    """VB-MAPP: milestones roll up by level; barriers and transition apart.

    Only milestone categories feed ``category_summaries`` and the overall
    totals.
    """

    def summarize_protocol(self, protocol: Protocol, scores: ScoreMap) -> OverallSummary:
        milestones = protocol.categories_in(CategorySection.MILESTONES)
        overall = self.summarize_overall(milestones, scores)
        overall.levels = _level_summaries(milestones, overall.category_summaries)
        overall.dominant_level = dominant_level(overall.levels)
        overall.barriers = summarize_barriers(
            protocol.categories_in(CategorySection.BARRIERS), scores
        )
        overall.transition = summarize_transition(
            protocol.categories_in(CategorySection.TRANSITION), scores
        )
        return overall



class RatingSummarizer(PointScaleSummarizer):
    """Symptom rating scale with a severity band on the total (CARS).

    The band is read from the sum of the items rated so far, so a
    partially rated evaluation reports the severity reached until now.
    """

    def _add_overall_extras(self, overall: OverallSummary) -> None:
        overall.severity = severity_label(overall.overall_score)

_SUMMARIZERS: dict[ProtocolType, type[PointScaleSummarizer]] = {
    ProtocolType.ABLLS_R: PointScaleSummarizer,
    ProtocolType.VB_MAPP: VBMAPPSummarizer,
    ProtocolType.PORTAGE: AchievementSummarizer,
    ProtocolType.CAROLINA: MasterySummarizer,
    ProtocolType.CARS: RatingSummarizer,
}

_SCALE_SUMMARIZERS: dict[ScoringScale, type[PointScaleSummarizer]] = {
    ScoringScale.POINTS: PointScaleSummarizer,
    ScoringScale.ACHIEVEMENT: AchievementSummarizer,
    ScoringScale.MASTERY: MasterySummarizer,
}


def get_summarizer(protocol_type: ProtocolType) -> PointScaleSummarizer:
    """Return the summarizer for a protocol type."""
    return _SUMMARIZERS[ProtocolType(protocol_type)]()


# ===================================================================
# Module-level entry points
# ===================================================================


def summarize_category(
    category: ProtocolCategory,
    scores: ScoreMap,
    scale: ScoringScale = ScoringScale.POINTS,
) -> CategorySummary:
    """Summarize one category on the given scale."""
    return _SCALE_SUMMARIZERS[scale]().summarize_category(category, scores)


def summarize_overall(
    categories: Iterable[ProtocolCategory],
    scores: ScoreMap,
    scale: ScoringScale = ScoringScale.POINTS,
) -> OverallSummary:
    """Summarize a set of categories on the given scale."""
    return _SCALE_SUMMARIZERS[scale]().summarize_overall(categories, scores)


def summarize_protocol(protocol: Protocol, scores: ScoreMap) -> OverallSummary:
    """Summarize a whole protocol using its instrument-specific summarizer."""
    return get_summarizer(protocol.protocol_type).summarize_protocol(protocol, scores)


# ===================================================================
# Variant helpers
# ===================================================================


def developmental_age(category: ProtocolCategory, scores: ScoreMap) -> int:
    """Highest age band among achieved items, 0 if none are achieved."""
    ages = [
        item.age_months
        for item in category.items
        if item.age_months is not None and _is_achieved(scores.get(item.id))
    ]
    return max(ages, default=0)


def _is_achieved(record: ItemScore | None) -> bool:
    return record is not None and not record.is_na and record.value is True


def _mastery_counts(items: Iterable[ProtocolItem], scores: ScoreMap) -> tuple[int, int]:
    mastered = developing = 0
    for item in items:
        record = scores.get(item.id)
        if record is None or not record.is_scored:
            continue
        if record.value == MasteryValue.MASTERED.value:
            mastered += 1
        elif record.value == MasteryValue.DEVELOPING.value:
            developing += 1
    return mastered, developing


def _sequence_summary(
    sequence_id: str, title: str, items: Iterable[ProtocolItem], scores: ScoreMap
) -> SequenceSummary:
    items = tuple(items)
    total = sum(1 for i in items if not _is_na(scores.get(i.id)))
    mastered, developing = _mastery_counts(items, scores)
    return SequenceSummary(
        sequence_id=sequence_id,
        title=title,
        total_items=total,
        mastered_count=mastered,
        developing_count=developing,
        percentage=percentage(mastered, total),
    )


def _is_na(record: ItemScore | None) -> bool:
    return record is not None and record.is_na


def _level_summaries(
    categories: Iterable[ProtocolCategory], summaries: Mapping[str, CategorySummary]
) -> list[LevelSummary]:
    levels: dict[int, LevelSummary] = {}
    for category in categories:
        if category.level is None:
            continue
        summary = summaries[category.id]
        level = levels.setdefault(category.level, LevelSummary(level=category.level))
        level.total_score = _clean(level.total_score + summary.total_score)
        level.max_possible_score = _clean(level.max_possible_score + summary.max_possible_score)
    for level in levels.values():
        level.percentage = percentage(level.total_score, level.max_possible_score)
    return [levels[key] for key in sorted(levels)]


def dominant_level(levels: Iterable[LevelSummary]) -> int | None:
    """Highest level above 50 %, else the level with the best percentage.

    Ties on percentage go to the lower level. Returns None when the
    protocol has no levelled milestones.
    """
    levels = list(levels)
    if not levels:
        return None
    above = [lvl.level for lvl in levels if lvl.percentage > DOMINANT_LEVEL_THRESHOLD]
    if above:
        return max(above)
    best = max(levels, key=lambda lvl: (lvl.percentage, -lvl.level))
    return best.level


def summarize_barriers(
    categories: Iterable[ProtocolCategory], scores: ScoreMap
) -> BarrierSummary:
    """Average severity and severe barriers across barrier categories."""
    total: float = 0
    scored = 0
    severe: list[str] = []
    for category in categories:
        for item in category.items:
            record = scores.get(item.id)
            if record is None or not record.is_scored:
                continue
            scored += 1
            total += record.value
            if record.value >= SEVERE_BARRIER_THRESHOLD:
                severe.append(item.id)
    average = float(round_half_up(total / scored, 1)) if scored else 0.0
    return BarrierSummary(
        total_score=_clean(total),
        scored_count=scored,
        average_severity=average,
        severe_barriers=severe,
    )


def summarize_transition(
    categories: Iterable[ProtocolCategory], scores: ScoreMap
) -> TransitionSummary:
    """Transition readiness across transition categories."""
    combined = PointScaleSummarizer().summarize_overall(categories, scores)
    result = TransitionSummary(
        total_items=sum(s.total_items for s in combined.category_summaries.values()),
        scored_items=sum(s.scored_items for s in combined.category_summaries.values()),
        total_score=combined.overall_score,
        max_possible_score=combined.overall_max_score,
        percentage=combined.overall_percentage,
    )
    result.readiness = readiness_label(result.percentage)
    return result


def readiness_label(pct: int) -> str:
    """Map a transition percentage to a readiness band."""
    for minimum, label in READINESS_BANDS:
        if pct >= minimum:
            return label
    return "not_ready"


def severity_label(total: float) -> str:
    """Map a CARS total score to its severity band."""
    for minimum, label in CARS_SEVERITY_BANDS:
        if total >= minimum:
            return label
    return "none"
