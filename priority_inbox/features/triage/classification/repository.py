"""
Persistence for classification results.
"""

from psycopg.types.json import Jsonb

from priority_inbox.db.helpers import execute_query, fetch_one
from priority_inbox.features.triage.domain import ClassificationResult
from priority_inbox.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ClassificationRepository:
    """Single-record upsert and lookup for the classifications table."""

    @staticmethod
    async def save(result: ClassificationResult) -> None:
        query = """
            INSERT INTO classifications (
                email_id, category, confidence, method, tags, reasoning, classified_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (email_id) DO UPDATE SET
                category = EXCLUDED.category,
                confidence = EXCLUDED.confidence,
                method = EXCLUDED.method,
                tags = EXCLUDED.tags,
                reasoning = EXCLUDED.reasoning,
                classified_at = EXCLUDED.classified_at
        """

        await execute_query(
            query,
            (
                result.message_id,
                str(result.category),
                result.confidence,
                str(result.method),
                Jsonb(list(result.tags)),
                result.reasoning,
                result.timestamp,
            ),
        )
        logger.debug(
            "Classification saved",
            message_id=result.message_id,
            category=str(result.category),
            method=str(result.method),
        )

    @staticmethod
    async def get(message_id: str) -> ClassificationResult | None:
        query = """
            SELECT email_id, category, confidence, method, tags, reasoning, classified_at
            FROM classifications
            WHERE email_id = %s
        """

        row = await fetch_one(query, (message_id,))
        if not row:
            return None

        return ClassificationResult(
            message_id=row["email_id"],
            category=row["category"],
            confidence=float(row["confidence"]),
            method=row["method"],
            tags=list(row.get("tags") or []),
            reasoning=row.get("reasoning") or "",
            timestamp=row["classified_at"],
        )
