"""
Persistence layer for priority scoring.

Wraps the emails, priorities, and sender_analytics tables. Every write is a
single-record upsert keyed by message id or sender address; nothing here
spans more than one message.
"""

from datetime import UTC, datetime

from psycopg.types.json import Jsonb

from priority_inbox.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from priority_inbox.features.triage.domain import (
    EmailFilter,
    FilteredEmail,
    PrioritizedEmail,
    PriorityFactors,
    PriorityScore,
    SenderAnalytics,
    StoredEmail,
)
from priority_inbox.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TriageRepositoryError(DatabaseError):
    """More specific exception for triage persistence failures."""


EMAIL_SELECT_COLUMNS = """
    e.id, e.account_id, e.thread_id, e.from_addr, e.to_addr, e.subject,
    e.body_snippet, e.headers, e.received_at, e.is_read, e.is_starred
"""


def _row_to_email(row: dict) -> StoredEmail:
    return StoredEmail(
        id=str(row["id"]),
        account_id=str(row["account_id"]),
        sender=row["from_addr"],
        subject=row.get("subject") or "",
        received_at=row["received_at"],
        recipient=row.get("to_addr") or "",
        body_snippet=row.get("body_snippet") or "",
        thread_id=row.get("thread_id"),
        headers=dict(row.get("headers") or {}),
        is_read=bool(row.get("is_read")),
        is_starred=bool(row.get("is_starred")),
    )


def _row_to_priority(row: dict, message_id_column: str = "email_id") -> PriorityScore:
    return PriorityScore(
        message_id=str(row[message_id_column]),
        score=int(row["score"]),
        factors=PriorityFactors.from_dict(row.get("factors")),
        reasoning=list(row.get("reasoning") or []),
        category=row.get("category") or "",
        timestamp=row["calculated_at"],
    )


class EmailRepository:
    """Read access to synced emails."""

    @staticmethod
    async def list_emails(account_id: str, limit: int) -> list[StoredEmail]:
        """Return the newest non-deleted emails for an account."""

        query = f"""
            SELECT {EMAIL_SELECT_COLUMNS}
            FROM emails e
            WHERE e.account_id = %s AND e.deleted = false
            ORDER BY e.received_at DESC
            LIMIT %s
        """

        rows = await fetch_all(query, (account_id, limit))
        return [_row_to_email(row) for row in rows]

    @staticmethod
    async def filter_emails(criteria: EmailFilter) -> list[FilteredEmail]:
        """
        Newest-first emails matching every given criterion.

        Unclassified emails report category "unknown" and unscored emails
        report score 0; a category or min_priority criterion excludes them.
        """

        conditions = ["e.deleted = false"]
        params: list = []

        if criteria.account_id:
            conditions.append("e.account_id = %s")
            params.append(criteria.account_id)
        if criteria.category:
            conditions.append("c.category = %s")
            params.append(criteria.category)
        if criteria.min_priority > 0:
            conditions.append("p.score >= %s")
            params.append(criteria.min_priority)
        if criteria.unread_only:
            conditions.append("e.is_read = false")
        if criteria.date_from:
            conditions.append("e.received_at >= %s")
            params.append(criteria.date_from)
        if criteria.date_to:
            conditions.append("e.received_at <= %s")
            params.append(criteria.date_to)

        where = " AND ".join(conditions)
        query = f"""
            SELECT {EMAIL_SELECT_COLUMNS},
                   COALESCE(c.category, 'unknown') AS category,
                   COALESCE(p.score, 0) AS score
            FROM emails e
            LEFT JOIN classifications c ON c.email_id = e.id
            LEFT JOIN priorities p ON p.email_id = e.id
            WHERE {where}
            ORDER BY e.received_at DESC
            LIMIT %s
        """
        params.append(criteria.limit)

        rows = await fetch_all(query, tuple(params))
        return [
            FilteredEmail(email=_row_to_email(row), category=row["category"], score=int(row["score"]))
            for row in rows
        ]


class PriorityRepository:
    """Upserts and queries over persisted priority scores."""

    @staticmethod
    async def save(score: PriorityScore) -> None:
        query = """
            INSERT INTO priorities (
                email_id, score, factors, reasoning, category, calculated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (email_id) DO UPDATE SET
                score = EXCLUDED.score,
                factors = EXCLUDED.factors,
                reasoning = EXCLUDED.reasoning,
                category = EXCLUDED.category,
                calculated_at = EXCLUDED.calculated_at
        """

        await execute_query(
            query,
            (
                score.message_id,
                score.score,
                Jsonb(score.factors.as_dict()),
                Jsonb(list(score.reasoning)),
                score.category,
                score.timestamp,
            ),
        )
        logger.debug("Priority saved", message_id=score.message_id, score=score.score)

    @staticmethod
    async def get(message_id: str) -> PriorityScore | None:
        query = """
            SELECT email_id, score, factors, reasoning, category, calculated_at
            FROM priorities
            WHERE email_id = %s
        """

        row = await fetch_one(query, (message_id,))
        if not row:
            return None
        return _row_to_priority(row)

    @staticmethod
    async def fetch_priority_emails(
        account_id: str, min_score: int, limit: int
    ) -> list[PrioritizedEmail]:
        """Emails at or above min_score, highest score first, then newest."""

        query = f"""
            SELECT {EMAIL_SELECT_COLUMNS},
                   p.score, p.factors, p.reasoning, p.category, p.calculated_at
            FROM emails e
            JOIN priorities p ON p.email_id = e.id
            WHERE e.account_id = %s
              AND e.deleted = false
              AND p.score >= %s
            ORDER BY p.score DESC, e.received_at DESC
            LIMIT %s
        """

        rows = await fetch_all(query, (account_id, min_score, limit))
        return [
            PrioritizedEmail(email=_row_to_email(row), priority=_row_to_priority(row, "id"))
            for row in rows
        ]

    @staticmethod
    async def fetch_score_distribution(account_id: str) -> dict[str, int]:
        """Count persisted scores per priority band for an account."""

        query = """
            SELECT
                COUNT(*) FILTER (WHERE p.score >= 90) AS critical,
                COUNT(*) FILTER (WHERE p.score >= 70 AND p.score < 90) AS high,
                COUNT(*) FILTER (WHERE p.score >= 40 AND p.score < 70) AS medium,
                COUNT(*) FILTER (WHERE p.score >= 20 AND p.score < 40) AS low,
                COUNT(*) FILTER (WHERE p.score < 20) AS minimal
            FROM priorities p
            JOIN emails e ON e.id = p.email_id
            WHERE e.account_id = %s AND e.deleted = false
        """

        row = await fetch_one(query, (account_id,))
        if not row:
            raise TriageRepositoryError(
                "Score distribution query returned no rows", operation="fetch_score_distribution"
            )

        return {band: int(row.get(band) or 0) for band in ("critical", "high", "medium", "low", "minimal")}


class SenderAnalyticsRepository:
    """Per-sender engagement history."""

    @staticmethod
    async def get(email_address: str) -> SenderAnalytics | None:
        query = """
            SELECT email_address, total_emails, read_count, reply_count,
                   avg_response_time, last_interaction, engagement_score, is_vip
            FROM sender_analytics
            WHERE email_address = %s
        """

        row = await fetch_one(query, (email_address,))
        if not row:
            return None

        return SenderAnalytics(
            email_address=row["email_address"],
            total_emails=int(row.get("total_emails") or 0),
            read_count=int(row.get("read_count") or 0),
            reply_count=int(row.get("reply_count") or 0),
            avg_response_time=row.get("avg_response_time"),
            last_interaction=row.get("last_interaction"),
            engagement_score=int(row.get("engagement_score") or 0),
            is_vip=bool(row.get("is_vip")),
        )

    @staticmethod
    async def upsert(analytics: SenderAnalytics) -> None:
        query = """
            INSERT INTO sender_analytics (
                email_address, total_emails, read_count, reply_count,
                avg_response_time, last_interaction, engagement_score, is_vip, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (email_address) DO UPDATE SET
                total_emails = EXCLUDED.total_emails,
                read_count = EXCLUDED.read_count,
                reply_count = EXCLUDED.reply_count,
                avg_response_time = EXCLUDED.avg_response_time,
                last_interaction = EXCLUDED.last_interaction,
                engagement_score = EXCLUDED.engagement_score,
                is_vip = EXCLUDED.is_vip,
                updated_at = EXCLUDED.updated_at
        """

        await execute_query(
            query,
            (
                analytics.email_address,
                analytics.total_emails,
                analytics.read_count,
                analytics.reply_count,
                analytics.avg_response_time,
                analytics.last_interaction,
                analytics.engagement_score,
                analytics.is_vip,
                datetime.now(UTC),
            ),
        )
        logger.info(
            "Sender analytics updated", email_address=analytics.email_address, is_vip=analytics.is_vip
        )
