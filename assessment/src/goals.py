"""Suggested intervention goals from emerging skills.

An item is emerging when it has been scored above the bottom of its
scale but below mastery: 0 < score < max on point scales, ``D`` on the
Carolina scale. Each emerging item becomes one goal suggestion worded
from its skill area's template.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from catalog.src.models import CategorySection, Protocol, ProtocolCategory
from catalog.src.scales import is_emerging
from assessment.src.models import Evaluation

MAX_GOALS = 10

_DEFAULT_TEMPLATE = (
    "will demonstrate the target skill",
    "with 80% accuracy across 3 consecutive sessions",
)

# Skill-area code to (goal wording, mastery criteria)
GOAL_TEMPLATES: dict[str, tuple[str, str]] = {
    # VB-MAPP operants
    "MAND": (
        "will independently request desired items, activities and information",
        "across 3 consecutive sessions with 80% accuracy",
    ),
    "TACT": (
        "will label items, actions and properties in the environment",
        "with 90% accuracy across 2 consecutive sessions",
    ),
    "LR": (
        "will follow instructions and respond to verbal stimuli",
        "with 80% accuracy across 3 consecutive sessions",
    ),
    # ABLLS-R categories
    "A": (
        "will demonstrate cooperation and attention during instructional activities",
        "for 10+ minutes across 3 consecutive sessions",
    ),
    "B": (
        "will complete visual performance tasks such as matching and puzzles",
        "with 80% accuracy across 3 consecutive sessions",
    ),
    "C": (
        "will respond to receptive language instructions",
        "with 80% accuracy across 3 consecutive sessions",
    ),
    "D": (
        "will imitate motor movements and actions",
        "within 3 seconds with 80% accuracy",
    ),
    "F": (
        "will use functional requests",
        "independently in 4 out of 5 opportunities",
    ),
    "G": (
        "will label items and actions in the environment",
        "with 90% accuracy across 2 consecutive sessions",
    ),
    # Carolina domains
    "cognitive": (
        "will attend to, remember and reason about objects and events",
        "in 4 out of 5 opportunities across 3 consecutive sessions",
    ),
    "communication": (
        "will understand and use words to communicate",
        "in 4 out of 5 opportunities across 3 consecutive sessions",
    ),
    "social_adaptation": (
        "will take part in self-care routines and social exchanges",
        "independently across 3 consecutive days",
    ),
    "fine_motor": (
        "will manipulate small objects and tools",
        "with 80% accuracy across 3 consecutive sessions",
    ),
    "gross_motor": (
        "will move, balance and play with whole-body control",
        "in 4 out of 5 opportunities",
    ),
}

_TRAILING_LEVEL = re.compile(r"\d+$")


@dataclass
class SuggestedGoal:
    """A goal proposed for one emerging item."""

    id: str
    skill_area: str
    skill_code: str
    item_id: str
    item_description: str
    current_score: Any
    goal_text: str
    short_term_objective: str
    target_criteria: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "skill_area": self.skill_area,
            "skill_code": self.skill_code,
            "item_id": self.item_id,
            "item_description": self.item_description,
            "current_score": self.current_score,
            "goal_text": self.goal_text,
            "short_term_objective": self.short_term_objective,
            "target_criteria": self.target_criteria,
        }


def skill_code(category: ProtocolCategory) -> str:
    """Template key of a category: VB-MAPP level digits are dropped."""
    return _TRAILING_LEVEL.sub("", category.id) or category.id


def suggest_goals(
    protocol: Protocol,
    evaluation: Evaluation,
    client_name: str = "The client",
    max_goals: int = MAX_GOALS,
) -> list[SuggestedGoal]:
    """Generate goal suggestions from an evaluation's emerging items.

    Items are visited in catalog order; VB-MAPP barrier and transition
    items never produce goals.

    Args:
        protocol: Catalog protocol the evaluation is scored against.
        evaluation: Evaluation to read scores from.
        client_name: Name used at the start of each goal sentence.
        max_goals: Maximum number of suggestions.

    Returns:
        Up to ``max_goals`` suggestions.
    """
    goals: list[SuggestedGoal] = []
    if max_goals <= 0:
        return goals
    for category in protocol.categories_in(CategorySection.MILESTONES):
        code = skill_code(category)
        goal_base, criteria = GOAL_TEMPLATES.get(code, _DEFAULT_TEMPLATE)
        for item in category.items:
            record = evaluation.scores.get(item.id)
            if record is None or not record.is_scored:
                continue
            if not is_emerging(protocol.scale, item, record.value):
                continue
            goals.append(
                SuggestedGoal(
                    id=f"goal_{item.id}",
                    skill_area=category.title,
                    skill_code=code,
                    item_id=item.id,
                    item_description=item.text,
                    current_score=record.value,
                    goal_text=f"{client_name} {goal_base} {criteria}.",
                    short_term_objective=(
                        f'{client_name} will demonstrate "{item.text}" '
                        "with prompting faded to independence."
                    ),
                    target_criteria=criteria,
                )
            )
            if len(goals) >= max_goals:
                return goals
    return goals
