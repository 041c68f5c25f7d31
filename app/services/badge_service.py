from __future__ import annotations

import logging
import time

from app.schemas.engine import BackfillReport, BadgeDefinition, BadgeEvaluation, UserStats
from app.services.errors import EngineError, PartialWriteFailure, ProfileNotFound
from app.store.types import EngineStore

logger = logging.getLogger(__name__)

_NO_DATA_RECOMMENDATION = "Complete more assessments to unlock recommendations!"
_ACTION_TEMPLATES: dict[str, tuple[str, str]] = {
    "resumes_screened": ("Screen", "resume"),
    "red_flags_found": ("Find", "red flag"),
    "calls_completed": ("Complete", "screening call"),
    "total_points": ("Earn", "point"),
}


def _progress_percent(current_value: int, requirement_value: int) -> float:
    if requirement_value <= 0:
        return 100.0
    return min(100.0, 100.0 * current_value / requirement_value)


def _catalog(store: EngineStore) -> list[BadgeDefinition]:
    return sorted(store.list_badges(), key=lambda badge: (badge.requirement_value, badge.id))


def _credit_awards(store: EngineStore, user_id: str, newly_earned: list[BadgeDefinition]) -> list[str]:
    """Insert award rows and credit their points as one unit; return ids this call inserted.

    Rows lost to a concurrent evaluation come back as duplicates and earn
    nothing here, so each badge's points are credited by exactly one writer.
    """
    points_by_id = {badge.id: badge.points for badge in newly_earned}
    with store.transaction():
        result = store.insert_badge_awards(user_id, [badge.id for badge in newly_earned])
        for badge_id in result.duplicates:
            logger.debug("badge_award_duplicate user=%s badge=%s", user_id, badge_id)

        points = sum(points_by_id[badge_id] for badge_id in result.inserted)
        if points > 0:
            try:
                store.increment_stats(user_id, {"total_points": points})
            except EngineError as exc:
                logger.error(
                    "badge_points_credit_failed user=%s badges=%s points=%s: %s",
                    user_id,
                    result.inserted,
                    points,
                    exc,
                )
                raise PartialWriteFailure(
                    f"Awarded badges for user '{user_id}' but could not credit {points} points."
                ) from exc

    if result.inserted:
        logger.info("badges_awarded user=%s badges=%s points=%s", user_id, result.inserted, points)
    return result.inserted


def _evaluate_round(
    store: EngineStore, user_id: str, awarded_now: set[str]
) -> tuple[list[BadgeEvaluation], list[str]]:
    stats = store.get_user_stats(user_id)
    if stats is None:
        raise ProfileNotFound(user_id)
    catalog = _catalog(store)
    earned_ids = store.list_earned_badge_ids(user_id)

    newly_earned = [
        badge
        for badge in catalog
        if badge.id not in earned_ids and stats.value_for(badge.requirement_type) >= badge.requirement_value
    ]
    inserted = _credit_awards(store, user_id, newly_earned) if newly_earned else []
    awarded_now = awarded_now | set(inserted)
    newly_ids = {badge.id for badge in newly_earned}

    evaluations: list[BadgeEvaluation] = []
    for badge in catalog:
        current_value = stats.value_for(badge.requirement_type)
        earned = badge.id in earned_ids or badge.id in newly_ids
        evaluations.append(
            BadgeEvaluation(
                badge_id=badge.id,
                earned=earned,
                earned_now=badge.id in awarded_now,
                progress_percent=100.0 if earned else _progress_percent(current_value, badge.requirement_value),
                current_value=current_value,
                requirement_value=badge.requirement_value,
                points=badge.points,
            )
        )
    return evaluations, inserted


def evaluate_and_award(store: EngineStore, user_id: str) -> list[BadgeEvaluation]:
    """Award every catalog badge the user's stats now satisfy.

    Returns one entry per catalog badge, in ascending threshold order. Badge
    points feed ``total_points``, so evaluation repeats until a round awards
    nothing; a second call with unchanged stats is then a no-op.
    """
    awarded_now: set[str] = set()
    while True:
        evaluations, inserted = _evaluate_round(store, user_id, awarded_now)
        if not inserted:
            return evaluations
        awarded_now.update(inserted)


def evaluate_badges_safely(store: EngineStore, user_id: str) -> list[BadgeEvaluation]:
    """Best-effort evaluation for callers whose primary action must not fail."""
    try:
        return evaluate_and_award(store, user_id)
    except Exception as exc:  # noqa: BLE001 - badge awarding must not block the triggering save
        logger.warning("badge_evaluation_failed user=%s: %s", user_id, exc)
        return []


def _recommendation(badge: BadgeDefinition, stats: UserStats) -> str | None:
    template = _ACTION_TEMPLATES.get(badge.requirement_type)
    if template is None:
        return None
    verb, noun = template
    remaining = badge.requirement_value - stats.value_for(badge.requirement_type)
    if remaining <= 0:
        return f'You\'ve earned "{badge.name}"! Check back shortly.'
    plural = "s" if remaining > 1 else ""
    return f'{verb} {remaining} more {noun}{plural} to earn "{badge.name}"'


def get_badge_recommendations(store: EngineStore, user_id: str, limit: int = 3) -> list[str]:
    stats = store.get_user_stats(user_id)
    catalog = _catalog(store)
    if stats is None or not catalog:
        return [_NO_DATA_RECOMMENDATION]

    earned_ids = store.list_earned_badge_ids(user_id)
    unearned = [badge for badge in catalog if badge.id not in earned_ids]
    recommendations = [
        text for text in (_recommendation(badge, stats) for badge in unearned[:limit]) if text
    ]
    if recommendations:
        return recommendations

    if not earned_ids:
        return [
            "Start screening resumes to earn your first badge!",
            "Look for red flags in resumes to improve your detection skills.",
        ]
    return [
        "Great progress! Continue screening to unlock more achievements.",
        "Try the challenge mode for extra points and recognition.",
    ]


def user_has_badges(store: EngineStore, user_id: str) -> bool:
    return store.has_any_badge(user_id)


def backfill_user_badges(store: EngineStore, *, batch_size: int = 10, delay_s: float = 0.1) -> BackfillReport:
    """Run the evaluator for every user with points, logging and skipping failures."""
    user_ids = store.list_user_ids_with_points()
    report = BackfillReport()
    if not user_ids:
        logger.info("badge_backfill_skipped reason=no_users_with_points")
        return report

    batch_size = max(1, int(batch_size))
    logger.info("badge_backfill_started users=%s batch_size=%s", len(user_ids), batch_size)
    for start in range(0, len(user_ids), batch_size):
        for user_id in user_ids[start : start + batch_size]:
            try:
                evaluations = evaluate_and_award(store, user_id)
            except Exception as exc:  # noqa: BLE001 - one user must not stop the backfill
                report.users_failed += 1
                logger.error("badge_backfill_user_failed user=%s: %s", user_id, exc)
                continue
            report.users_processed += 1
            report.badges_awarded += sum(1 for item in evaluations if item.earned_now)

        if delay_s > 0 and start + batch_size < len(user_ids):
            time.sleep(delay_s)

    logger.info(
        "badge_backfill_completed processed=%s failed=%s awarded=%s",
        report.users_processed,
        report.users_failed,
        report.badges_awarded,
    )
    return report
