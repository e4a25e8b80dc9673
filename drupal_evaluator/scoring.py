"""
Weighted scoring of an evaluation report.

Every criterion awards a ``Score`` (points scored, points available).
Scores are summed, so the total available is the same for every project
and percentages are comparable across reports.
"""

from typing import Any, Callable, NamedTuple


class Score(NamedTuple):
    """Points scored out of points available."""

    scored: float = 0
    total: float = 0

    def __add__(self, other: "Score") -> "Score":  # type: ignore[override]
        return Score(self.scored + other.scored, self.total + other.total)

    @property
    def percentage(self) -> float:
        return format_percentage(self.scored, self.total)


def award_binary(passes: bool, points: float) -> Score:
    """All points when ``passes``, none otherwise."""
    return Score(points if passes else 0, points)


def award_scaled(coefficient: float, value: float, max_points: float) -> Score:
    """
    Award points that decay linearly with ``value``.

    ``value`` 0 earns ``max_points``; credit reaches 0 once
    ``value >= max_points / coefficient``.
    """
    return Score(max(max_points - coefficient * value, 0), max_points)


def format_percentage(scored: float, total: float) -> float:
    """Percentage rounded to two decimals."""
    if not total:
        return 0.0
    return round(scored / total * 100, 2)


def _number(report: dict[str, Any], *fields: str) -> float:
    """Sum report fields, counting missing or null values as 0."""
    return sum(report.get(field) or 0 for field in fields)


class Criterion(NamedTuple):
    """A named scoring rule."""

    name: str
    award: Callable[[dict[str, Any]], Score]
    max_points: float


def binary(
    name: str, points: float, check: Callable[[dict[str, Any]], bool]
) -> Criterion:
    return Criterion(name, lambda report: award_binary(check(report), points), points)


def scaled(name: str, coefficient: float, max_points: float, *fields: str) -> Criterion:
    return Criterion(
        name,
        lambda report: award_scaled(coefficient, _number(report, *fields), max_points),
        max_points,
    )


CRITERIA: list[Criterion] = [
    binary(
        "security_advisory_coverage",
        5,
        lambda report: report.get("security_advisory_coverage") == "covered",
    ),
    binary("is_stable", 5, lambda report: bool(report.get("is_stable"))),
    scaled("issues_priority_critical", 1.5, 5, "issues_priority_critical"),
    scaled("issues_priority_major", 1, 5, "issues_priority_major"),
    scaled("issues_status_rtbc", 1, 5, "issues_status_rtbc"),
    scaled("deprecation_errors", 0.1, 5, "deprecation_errors"),
    scaled("phpcs_drupal", 0.01, 5, "phpcs_drupal_errors", "phpcs_drupal_warnings"),
    scaled("phpcs_compat", 0.75, 5, "phpcs_compat_errors", "phpcs_compat_warnings"),
    scaled("releases_days_since", 0.01, 5, "releases_days_since"),
    binary(
        "composer_validate",
        5,
        lambda report: report.get("composer_validate") == "passes",
    ),
    binary("orca_integrated", 10, lambda report: bool(report.get("orca_integrated"))),
]

TOTAL_POINTS = sum(criterion.max_points for criterion in CRITERIA)


def calculate_score(
    report: dict[str, Any], criteria: list[Criterion] | None = None
) -> Score:
    """
    Score a report against every criterion.

    Null metrics (a tool that produced nothing, a project without releases)
    score as 0; the report itself is not modified.
    """
    score = Score()
    for criterion in criteria if criteria is not None else CRITERIA:
        score = score + criterion.award(report)
    return score
