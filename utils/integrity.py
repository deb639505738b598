"""Content integrity audit for tracks, lessons, quizzes and generated media.

Critical issues block a release (missing tracks or lessons, empty lessons,
lessons without a quiz). Warnings flag thin quizzes and missing or
unreachable media, which can be regenerated.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from config import load_config
from db.database import fetch_all, new_id
from utils import media
from utils.generation import generate_lesson_pdf, generate_lesson_podcast

logger = logging.getLogger(__name__)

ALERT_ISSUE_LIMIT = 20
MEDIA_COLUMNS = (("podcast", "podcast_url"), ("pdf", "pdf_url"))


def _empty_stats() -> Dict[str, int]:
    return {
        "tracks_checked": 0,
        "lessons_checked": 0,
        "quizzes_checked": 0,
        "questions_checked": 0,
        "missing_lessons": 0,
        "missing_quizzes": 0,
        "missing_podcast_urls": 0,
        "missing_pdf_urls": 0,
        "missing_podcast_files": 0,
        "missing_pdf_files": 0,
    }


def _issue(severity: str, kind: str, message: str, track_slug: Optional[str] = None,
           lesson_id: Optional[str] = None, **details) -> Dict[str, Any]:
    issue = {"severity": severity, "type": kind, "message": message}
    if track_slug:
        issue["track_slug"] = track_slug
    if lesson_id:
        issue["lesson_id"] = lesson_id
    if details:
        issue["details"] = details
    return issue


def run_audit(conn, slugs: Optional[List[str]] = None, check_remote: Optional[bool] = None) -> Dict[str, Any]:
    cfg = load_config()["integrity"]
    expected_counts: Dict[str, int] = cfg["expected_lessons"]
    min_questions = cfg["min_questions"]
    if check_remote is None:
        check_remote = cfg["check_remote"]

    tracks = {
        row["slug"]: row
        for row in fetch_all(conn, "SELECT id, slug, title FROM tracks WHERE deleted_at IS NULL")
    }
    if slugs:
        targets = list(dict.fromkeys(slugs))
    else:
        targets = list(expected_counts) + sorted(slug for slug in tracks if slug not in expected_counts)

    issues: List[Dict[str, Any]] = []
    stats = _empty_stats()
    repairs: List[Dict[str, str]] = []

    for slug in targets:
        track = tracks.get(slug)
        if not track:
            stats["missing_lessons"] += expected_counts.get(slug, 0)
            issues.append(_issue("critical", "missing_track", f"Track {slug} is missing.", slug))
            continue
        stats["tracks_checked"] += 1
        lessons = fetch_all(
            conn,
            """
            SELECT id, title, content, podcast_url, pdf_url
            FROM lessons
            WHERE track_id = :track_id AND deleted_at IS NULL
            ORDER BY position
            """,
            {"track_id": track["id"]},
        )
        stats["lessons_checked"] += len(lessons)
        expected = expected_counts.get(slug)
        if expected is not None and len(lessons) != expected:
            stats["missing_lessons"] += abs(len(lessons) - expected)
            issues.append(_issue(
                "critical", "lesson_count_mismatch",
                f"Track {slug} has {len(lessons)} lessons (expected {expected}).", slug,
                actual=len(lessons), expected=expected,
            ))
        elif not lessons:
            issues.append(_issue("critical", "missing_lessons", f"Track {slug} has no lessons.", slug))

        quiz_rows = fetch_all(
            conn,
            """
            SELECT q.id, q.lesson_id, COUNT(qu.id) AS question_count
            FROM quizzes q
            JOIN lessons l ON l.id = q.lesson_id
            LEFT JOIN questions qu ON qu.quiz_id = q.id
            WHERE l.track_id = :track_id AND l.deleted_at IS NULL
            GROUP BY q.id, q.lesson_id
            """,
            {"track_id": track["id"]},
        )
        quizzes_by_lesson: Dict[str, List[dict]] = {}
        for quiz in quiz_rows:
            quizzes_by_lesson.setdefault(quiz["lesson_id"], []).append(quiz)

        for lesson in lessons:
            if not (lesson["content"] or "").strip():
                issues.append(_issue(
                    "critical", "empty_lesson_content",
                    f"Lesson {lesson['title']} has no content.", slug, lesson["id"],
                ))
            quizzes = quizzes_by_lesson.get(lesson["id"], [])
            if not quizzes:
                stats["missing_quizzes"] += 1
                issues.append(_issue(
                    "critical", "missing_quiz", f"Lesson {lesson['title']} has no quiz.", slug, lesson["id"],
                ))
            for quiz in quizzes:
                stats["quizzes_checked"] += 1
                count = int(quiz["question_count"])
                stats["questions_checked"] += count
                if count < min_questions:
                    issues.append(_issue(
                        "warning", "insufficient_questions",
                        f"Lesson {lesson['title']} quiz has {count} questions (expected {min_questions}).",
                        slug, lesson["id"], quiz_id=quiz["id"],
                    ))
            _check_media(lesson, slug, issues, stats, repairs, check_remote, cfg["head_timeout"])

    blocking = sum(1 for issue in issues if issue["severity"] == "critical")
    return {
        "ok": blocking == 0,
        "blocking_issues": blocking,
        "warning_issues": len(issues) - blocking,
        "issues": issues,
        "stats": stats,
        "repairs": repairs,
    }


def _check_media(lesson: dict, slug: str, issues: list, stats: dict, repairs: list,
                 check_remote: bool, head_timeout: float) -> None:
    for kind, column in MEDIA_COLUMNS:
        url = lesson[column]
        if not url:
            stats[f"missing_{kind}_urls"] += 1
            repairs.append({"lesson_id": lesson["id"], "kind": kind})
            issues.append(_issue(
                "warning", f"missing_{kind}_url", f"Lesson {lesson['title']} has no {kind} URL.", slug, lesson["id"],
            ))
            continue
        local_path = media.upload_path_for(url)
        if local_path is not None:
            if not local_path.exists():
                stats[f"missing_{kind}_files"] += 1
                repairs.append({"lesson_id": lesson["id"], "kind": kind})
                issues.append(_issue(
                    "warning", f"missing_{kind}_file",
                    f"Lesson {lesson['title']} {kind} file is missing.", slug, lesson["id"], url=url,
                ))
        elif check_remote and url.startswith(("http://", "https://")):
            if not media.check_remote_file(url, head_timeout):
                issues.append(_issue(
                    "warning", f"unreachable_{kind}_url",
                    f"Lesson {lesson['title']} {kind} URL is unreachable.", slug, lesson["id"], url=url,
                ))


async def regenerate_missing_media(repairs: List[Dict[str, str]]) -> Dict[str, int]:
    """Re-run PDF/podcast generation for the lessons the audit flagged."""
    results = {"regenerated": 0, "failed": 0}
    for repair in repairs:
        job = generate_lesson_pdf if repair["kind"] == "pdf" else generate_lesson_podcast
        url = await job(new_id(), repair["lesson_id"])
        results["regenerated" if url else "failed"] += 1
    return results


def send_alert(summary: Dict[str, Any], trigger: str = "manual") -> bool:
    """POST the summary to CONTENT_ALERT_WEBHOOK_URL; returns False when unset or failing."""
    webhook_url = os.getenv("CONTENT_ALERT_WEBHOOK_URL")
    if not webhook_url:
        return False
    payload = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "trigger": trigger,
        "ok": summary["ok"],
        "blocking_issues": summary["blocking_issues"],
        "warning_issues": summary["warning_issues"],
        "stats": summary["stats"],
        "issues": summary["issues"][:ALERT_ISSUE_LIMIT],
    }
    try:
        response = requests.post(webhook_url, json=payload, timeout=10)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error("Content integrity alert failed: %s", exc)
        return False
    return True
