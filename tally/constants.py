"""
tally.constants — Shared Constants & Helpers
=============================================

Single source of truth for the objective taxonomy, bucket labels and the
impact-report suggestion texts.
"""

from __future__ import annotations

from tally.database.models import Feature, ObjectiveAction, ObjectiveGroup

# ---------------------------------------------------------------------------
# Objective taxonomy: group → action → features it may count
# ---------------------------------------------------------------------------
OBJECTIVE_TAXONOMY: dict[ObjectiveGroup, dict[ObjectiveAction, tuple[Feature, ...]]] = {
    ObjectiveGroup.ATTENDANCE_CHECK: {
        ObjectiveAction.CHECK_IN: (Feature.EVENTS, Feature.MEETINGS, Feature.TRAININGS),
        ObjectiveAction.ATTEND: (Feature.EVENTS, Feature.MEETINGS, Feature.TRAININGS),
    },
    ObjectiveGroup.MODIFICATION: {
        ObjectiveAction.CREATE: (
            Feature.PROJECTS, Feature.TASKS, Feature.TEAMS, Feature.EVENTS,
        ),
        ObjectiveAction.UPDATE: (Feature.PROJECTS, Feature.TASKS, Feature.TEAMS),
        ObjectiveAction.DELETE: (Feature.PROJECTS, Feature.TASKS, Feature.TEAMS),
    },
    ObjectiveGroup.INTERACTION: {
        ObjectiveAction.SEND: (Feature.COMMENTS, Feature.REPLIES),
        ObjectiveAction.REPLY_TO: (Feature.COMMENTS, Feature.REPLIES),
        ObjectiveAction.REACT_TO: (Feature.COMMENTS, Feature.REPLIES, Feature.BOARD),
    },
    ObjectiveGroup.DECISION: {
        ObjectiveAction.VOTE_IN: (Feature.VOTES, Feature.BOARD),
    },
    ObjectiveGroup.CONTRIBUTION: {
        ObjectiveAction.CREATE: (Feature.STRATEGIES, Feature.SUBTASKS),
        ObjectiveAction.JOIN: (Feature.TEAMS, Feature.PROJECTS),
    },
    ObjectiveGroup.EXPLORATION: {
        ObjectiveAction.DISCOVER: (
            Feature.MEMBERS, Feature.GUESTS, Feature.PAST_PRESIDENT, Feature.CULTURE,
        ),
    },
}

# Groups whose objectives never carry a privacy setting.
PRIVACY_DISABLED_GROUPS: frozenset[ObjectiveGroup] = frozenset({
    ObjectiveGroup.EXPLORATION,
})


def actions_for_group(group: ObjectiveGroup | str) -> list[ObjectiveAction]:
    """Actions an objective in *group* may count (empty for unknown groups)."""
    try:
        return list(OBJECTIVE_TAXONOMY[ObjectiveGroup(group)])
    except ValueError:
        return []


def features_for(group: ObjectiveGroup | str, action: ObjectiveAction | str) -> list[Feature]:
    """Features valid for *action* within *group*."""
    try:
        actions = OBJECTIVE_TAXONOMY[ObjectiveGroup(group)]
        return list(actions.get(ObjectiveAction(action), ()))
    except ValueError:
        return []


def privacy_disabled(group: ObjectiveGroup | str) -> bool:
    try:
        return ObjectiveGroup(group) in PRIVACY_DISABLED_GROUPS
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Statistics bucket labels (locale-independent short month names)
# ---------------------------------------------------------------------------
MONTH_LABELS: tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

# ---------------------------------------------------------------------------
# Impact report suggestions
# ---------------------------------------------------------------------------
SUGGESTION_LOW_HOURS = (
    "Organize a major volunteering drive to boost community hours."
)
SUGGESTION_HIGH_HOURS = (
    "Retention is strong; invest in leadership training for top contributors "
    "to amplify impact."
)
SUGGESTION_LOW_DIVERSITY = (
    "Diversify activity portfolio to attract members with varied skills and interests."
)
SUGGESTION_HIGH_DIVERSITY = (
    "High activity volume; monitor for volunteer burnout and ensure quality over quantity."
)
