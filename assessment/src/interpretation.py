"""Clinical interpretation of evaluation summaries.

Turns percentages and developmental ages into banded clinical language:
an overall interpretation with an intervention recommendation, a status
per category, ABLLS-R domain roll-ups, priority intervention areas, and
developmental delay against chronological age.

Nothing here changes an evaluation. All functions read summaries only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from catalog.src.models import ProtocolType
from assessment.src.models import CategorySummary, Evaluation
from assessment.src.summary import percentage

# VB-MAPP level to midpoint of its age band, in months
VBMAPP_LEVEL_AGE_MONTHS = {1: 9, 2: 24, 3: 39}
VBMAPP_LEVEL_AGE_BANDS = {1: "0-18 months", 2: "18-30 months", 3: "30-48 months"}

ABLLS_DOMAINS: dict[str, tuple[str, ...]] = {
    "Language & Communication": ("D", "E", "F", "G", "H", "I", "J", "T"),
    "Academic Readiness": ("M", "N", "O", "P", "Q", "R", "S"),
    "Foundational Skills": ("A", "B", "C"),
    "Social & Play": ("K", "L"),
    "Self-Help & Independence": ("U", "V", "W", "X"),
    "Motor Skills": ("Y", "Z"),
}

_BARRIER_RECOMMENDATIONS = {
    "BAR-1": (
        "Pair the therapist and environment with high-value reinforcers. "
        "Reduce demand density and use errorless teaching."
    ),
    "BAR-2": (
        "Build instructional control gradually: start with easy demands, "
        "reinforce compliance richly and fade reinforcement slowly."
    ),
    "BAR-3": (
        "Prioritize mand training with high-motivation items. "
        "Fade prompts quickly to encourage spontaneity."
    ),
    "BAR-4": (
        "Use natural environment teaching so tacting serves a purpose "
        "beyond labeling for the therapist."
    ),
    "BAR-5": (
        "Implement a systematic prompt-fading procedure and move from "
        "most-to-least to least-to-most prompting where appropriate."
    ),
    "BAR-6": (
        "Pair eye contact with reinforcement during attending tasks. "
        "Make it naturally reinforcing rather than forcing it."
    ),
}
_DEFAULT_BARRIER_RECOMMENDATION = (
    "Implement a targeted behavior intervention plan addressing the function "
    "of this barrier. Consult a BCBA for specific protocols."
)


# ===================================================================
# Configuration and result types
# ===================================================================


@dataclass
class InterpretationConfig:
    """Percentage bands and priority-area rules.

    Attributes:
        excellent_threshold: Minimum percentage for "excellent" / mastered.
        good_threshold: Minimum percentage for "good" / developing.
        moderate_threshold: Minimum percentage for "moderate" / emerging.
        significant_threshold: Minimum percentage for "significant".
        priority_min: Lowest category percentage considered a priority area.
        priority_max: Categories at or above this are not priority areas.
        max_priority_areas: How many priority areas to report.
    """

    excellent_threshold: int = 80
    good_threshold: int = 60
    moderate_threshold: int = 40
    significant_threshold: int = 20
    priority_min: int = 20
    priority_max: int = 70
    max_priority_areas: int = 5

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "excellent_threshold": self.excellent_threshold,
            "good_threshold": self.good_threshold,
            "moderate_threshold": self.moderate_threshold,
            "significant_threshold": self.significant_threshold,
            "priority_min": self.priority_min,
            "priority_max": self.priority_max,
            "max_priority_areas": self.max_priority_areas,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InterpretationConfig:
        """Deserialize from dictionary. Missing keys use defaults."""
        return cls(
            excellent_threshold=data.get("excellent_threshold", 80),
            good_threshold=data.get("good_threshold", 60),
            moderate_threshold=data.get("moderate_threshold", 40),
            significant_threshold=data.get("significant_threshold", 20),
            priority_min=data.get("priority_min", 20),
            priority_max=data.get("priority_max", 70),
            max_priority_areas=data.get("max_priority_areas", 5),
        )


@dataclass
class ClinicalInterpretation:
    """Banded reading of an overall result."""

    level: str
    title: str
    description: str
    recommendation: str
    intervention_hours: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "level": self.level,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "intervention_hours": self.intervention_hours,
        }


@dataclass
class DevelopmentalDelay:
    """Gap between chronological and developmental age."""

    delay_months: float
    delay_percentage: int
    severity: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "delay_months": self.delay_months,
            "delay_percentage": self.delay_percentage,
            "severity": self.severity,
        }


@dataclass
class PriorityArea:
    """A category recommended as an intervention target."""

    category_id: str
    category_title: str
    percentage: int

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "category_id": self.category_id,
            "category_title": self.category_title,
            "percentage": self.percentage,
        }


@dataclass
class ClinicalReport:
    """Full interpretation of one evaluation."""

    evaluation_id: str
    protocol_type: ProtocolType
    overall: ClinicalInterpretation
    category_status: dict[str, dict[str, str]] = field(default_factory=dict)
    domains: dict[str, dict[str, Any]] = field(default_factory=dict)
    priority_areas: list[PriorityArea] = field(default_factory=list)
    developmental_delay: DevelopmentalDelay | None = None
    developmental_age_band: str | None = None
    barrier_recommendations: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "evaluation_id": self.evaluation_id,
            "protocol_type": self.protocol_type.value,
            "overall": self.overall.to_dict(),
            "category_status": self.category_status,
            "domains": self.domains,
            "priority_areas": [p.to_dict() for p in self.priority_areas],
            "developmental_delay": self.developmental_delay.to_dict()
            if self.developmental_delay
            else None,
            "developmental_age_band": self.developmental_age_band,
            "barrier_recommendations": self.barrier_recommendations,
        }


# ===================================================================
# Banding functions
# ===================================================================


def interpret_percentage(
    pct: int, config: InterpretationConfig | None = None
) -> ClinicalInterpretation:
    """Interpret an overall skills percentage."""
    config = config or InterpretationConfig()
    if pct >= config.excellent_threshold:
        return ClinicalInterpretation(
            level="excellent",
            title="Well-Developed Skills",
            description="Skills are well developed across the assessed areas.",
            recommendation=(
                "Focus on generalization, maintenance and higher-level skills. "
                "Consider less intensive support."
            ),
        )
    if pct >= config.good_threshold:
        return ClinicalInterpretation(
            level="good",
            title="Good Progress",
            description="Most foundational skills are present; some areas are still developing.",
            recommendation="Continue the current plan with targeted work on gap areas.",
            intervention_hours="15-25 hours/week recommended",
        )
    if pct >= config.moderate_threshold:
        return ClinicalInterpretation(
            level="moderate",
            title="Moderate Skill Deficits",
            description="Moderate skill deficits are present across several areas.",
            recommendation=(
                "Intensive intervention recommended, focused on foundational "
                "and communication skills."
            ),
            intervention_hours="20-30 hours/week recommended",
        )
    if pct >= config.significant_threshold:
        return ClinicalInterpretation(
            level="significant",
            title="Significant Delays",
            description="Significant delays were identified across most areas.",
            recommendation=(
                "Comprehensive program required. Prioritize early learner "
                "curriculum and basic communication."
            ),
            intervention_hours="25-35 hours/week recommended",
        )
    return ClinicalInterpretation(
        level="profound",
        title="Profound Delays",
        description="Profound skill deficits are present.",
        recommendation=(
            "Maximum intensity program recommended. Focus on attending, "
            "imitation and early requesting."
        ),
        intervention_hours="30-40 hours/week recommended",
    )


def interpret_delay(delay: DevelopmentalDelay, level: int | None = None) -> ClinicalInterpretation:
    """Interpret a developmental delay, optionally naming the VB-MAPP level."""
    where = f" at Level {level}" if level is not None else ""
    if delay.severity == "none":
        return ClinicalInterpretation(
            level="excellent",
            title="Age-Appropriate Development",
            description="Skills are developing at an age-appropriate rate.",
            recommendation="Continue current programming and monitor maintenance.",
        )
    if delay.severity == "mild":
        return ClinicalInterpretation(
            level="good",
            title="Mild Developmental Delay",
            description=f"Client is functioning{where} with mild delays.",
            recommendation="Regular therapy recommended, focused on emerging skills.",
            intervention_hours="10-20 hours/week recommended",
        )
    if delay.severity == "moderate":
        return ClinicalInterpretation(
            level="moderate",
            title="Moderate Developmental Delay",
            description=f"Client shows moderate delays, functioning{where}.",
            recommendation="Intensive early intervention recommended, prioritizing requesting.",
            intervention_hours="20-30 hours/week recommended",
        )
    if delay.severity == "severe":
        return ClinicalInterpretation(
            level="significant",
            title="Severe Developmental Delay",
            description=f"Client shows severe delays, functioning{where}.",
            recommendation="Comprehensive program required; address barriers early.",
            intervention_hours="25-35 hours/week recommended",
        )
    return ClinicalInterpretation(
        level="profound",
        title="Profound Developmental Delay",
        description=f"Client functions far below chronological age{where}.",
        recommendation="Maximum intensity intervention while addressing barriers.",
        intervention_hours="30-40 hours/week recommended",
    )



def interpret_rating_severity(severity: str) -> ClinicalInterpretation:
    """Interpret a CARS severity band."""
    if severity == "severe":
        return ClinicalInterpretation(
            level="significant",
            title="Severe Autism Symptoms",
            description="Ratings fall in the severe range of autism symptoms.",
            recommendation=(
                "Refer for a comprehensive diagnostic evaluation and begin "
                "intensive, individualized intervention."
            ),
            intervention_hours="25-40 hours/week recommended",
        )
    if severity == "mild_moderate":
        return ClinicalInterpretation(
            level="moderate",
            title="Mild to Moderate Autism Symptoms",
            description="Ratings fall in the mild to moderate range of autism symptoms.",
            recommendation=(
                "Refer for diagnostic confirmation and target social "
                "communication and adaptive behavior."
            ),
            intervention_hours="15-25 hours/week recommended",
        )
    return ClinicalInterpretation(
        level="excellent",
        title="Minimal to No Autism Symptoms",
        description="Ratings are below the autism range.",
        recommendation="Monitor development and re-rate if new concerns arise.",
    )

def category_status(pct: int, config: InterpretationConfig | None = None) -> dict[str, str]:
    """Classify one category as mastered, developing, emerging or priority."""
    config = config or InterpretationConfig()
    if pct >= config.excellent_threshold:
        return {"status": "mastered", "label": "Well-Developed"}
    if pct >= config.good_threshold:
        return {"status": "developing", "label": "Developing"}
    if pct >= config.moderate_threshold:
        return {"status": "emerging", "label": "Emerging"}
    return {"status": "priority", "label": "Priority Target"}


def calculate_developmental_delay(
    chronological_age_months: float, developmental_age_months: float
) -> DevelopmentalDelay:
    """Compute the delay of developmental age behind chronological age.

    Severity is "moderate" from 25 %, "severe" from 50 % and "profound"
    from 75 % delay; any smaller positive delay is "mild".

    Args:
        chronological_age_months: Client age.
        developmental_age_months: Age level of demonstrated skills.

    Returns:
        DevelopmentalDelay; severity "none" when there is no delay.
    """
    if chronological_age_months <= developmental_age_months:
        return DevelopmentalDelay(delay_months=0, delay_percentage=0, severity="none")
    delay = chronological_age_months - developmental_age_months
    if float(delay).is_integer():
        delay = int(delay)
    delay_pct = percentage(delay, chronological_age_months)
    if delay_pct >= 75:
        severity = "profound"
    elif delay_pct >= 50:
        severity = "severe"
    elif delay_pct >= 25:
        severity = "moderate"
    else:
        severity = "mild"
    return DevelopmentalDelay(delay_months=delay, delay_percentage=delay_pct, severity=severity)


def domain_scores(summaries: Mapping[str, CategorySummary]) -> dict[str, dict[str, Any]]:
    """Roll ABLLS-R category summaries up into reporting domains."""
    result: dict[str, dict[str, Any]] = {}
    for domain, category_ids in ABLLS_DOMAINS.items():
        present = [c for c in category_ids if c in summaries]
        total = sum(summaries[c].total_score for c in present)
        max_total = sum(summaries[c].max_possible_score for c in present)
        result[domain] = {"percentage": percentage(total, max_total), "categories": present}
    return result


def priority_areas(
    summaries: Mapping[str, CategorySummary], config: InterpretationConfig | None = None
) -> list[PriorityArea]:
    """Categories inside the priority window, lowest percentage first."""
    config = config or InterpretationConfig()
    candidates = [
        s
        for s in summaries.values()
        if config.priority_min <= s.percentage < config.priority_max
    ]
    candidates.sort(key=lambda s: s.percentage)
    return [
        PriorityArea(s.category_id, s.category_title, s.percentage)
        for s in candidates[: config.max_priority_areas]
    ]


def barrier_recommendation(barrier_id: str) -> str:
    """Intervention recommendation for a VB-MAPP barrier item."""
    return _BARRIER_RECOMMENDATIONS.get(barrier_id, _DEFAULT_BARRIER_RECOMMENDATION)


# ===================================================================
# ClinicalInterpreter
# ===================================================================


class ClinicalInterpreter:
    """Builds a ClinicalReport for an evaluation.

    Delay-based interpretation is used when the evaluation records the
    client's chronological age and the protocol yields a developmental
    age (Portage overall age, VB-MAPP dominant level). Otherwise the
    overall percentage is banded. Rating scales (CARS) are
    interpreted from their severity band only.

    Args:
        config: Bands and priority-area rules.
    """

    def __init__(self, config: InterpretationConfig | None = None) -> None:
        self._config = config or InterpretationConfig()

    def interpret(self, evaluation: Evaluation) -> ClinicalReport:
        """Interpret an evaluation's cached summaries."""
        summary = evaluation.summary
        delay = None
        age_band = None
        developmental_age = self._developmental_age(evaluation)
        if evaluation.protocol_type == ProtocolType.VB_MAPP and summary.dominant_level:
            age_band = VBMAPP_LEVEL_AGE_BANDS.get(summary.dominant_level)
        if summary.severity is not None:
            overall = interpret_rating_severity(summary.severity)
        elif evaluation.chronological_age_months and developmental_age is not None:
            delay = calculate_developmental_delay(
                evaluation.chronological_age_months, developmental_age
            )
            level = summary.dominant_level if evaluation.protocol_type == ProtocolType.VB_MAPP else None
            overall = interpret_delay(delay, level)
        else:
            overall = interpret_percentage(evaluation.overall_percentage, self._config)

        report = ClinicalReport(
            evaluation_id=evaluation.id,
            protocol_type=evaluation.protocol_type,
            overall=overall,
            developmental_delay=delay,
            developmental_age_band=age_band,
        )
        # rating scales measure symptoms, not skills
        if summary.severity is None:
            report.category_status = {
                key: category_status(s.percentage, self._config)
                for key, s in evaluation.category_summaries.items()
            }
            report.priority_areas = priority_areas(evaluation.category_summaries, self._config)
        if evaluation.protocol_type == ProtocolType.ABLLS_R:
            report.domains = domain_scores(evaluation.category_summaries)
        if summary.barriers is not None:
            report.barrier_recommendations = {
                barrier_id: barrier_recommendation(barrier_id)
                for barrier_id in summary.barriers.severe_barriers
            }
        return report

    @staticmethod
    def _developmental_age(evaluation: Evaluation) -> float | None:
        summary = evaluation.summary
        if evaluation.protocol_type == ProtocolType.PORTAGE:
            return summary.developmental_age_months
        if evaluation.protocol_type == ProtocolType.VB_MAPP and summary.dominant_level:
            return VBMAPP_LEVEL_AGE_MONTHS.get(summary.dominant_level)
        return None
