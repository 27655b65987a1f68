"""
Conversation store - Supabase backend.

Append-only log of advisor conversations and messages, plus the
write-only sink for specialist insights.

Tables: ``advisor_conversations``, ``advisor_messages``, ``specialist_insights``
(DDL in ``infrastructure/db/schema.py``).
"""

import json
from loguru import logger
from typing import Callable, List, Optional
from sqlalchemy import text
from memory.schemas import Conversation, Message, SpecialistInsight


_CONVERSATION_COLUMNS = "id::text AS id, user_id, title, specialist_type, created_at, updated_at"
_MESSAGE_COLUMNS = (
    "id::text AS id, seq, conversation_id::text AS conversation_id, role, content, "
    "image_urls, specialist_type, status, created_at"
)


class ConversationStore:
    """
    Conversation log backed by Supabase PostgreSQL.

    All methods are blocking; the orchestrator calls them through
    ``asyncio.to_thread``. Each call opens and closes its own session.
    """

    def __init__(self, session_factory: Optional[Callable] = None):
        if not session_factory:
            from infrastructure.db.sql_client import get_session
            session_factory = get_session
        self.session_factory = session_factory

    def create_conversation(
        self, user_id: str, specialist_type: Optional[str] = None
    ) -> Conversation:
        """Create a conversation, optionally pinning a specialist."""
        session = self.session_factory()
        try:
            row = session.execute(
                text(f"""
                    INSERT INTO advisor_conversations (user_id, specialist_type)
                    VALUES (:user_id, :specialist_type)
                    RETURNING {_CONVERSATION_COLUMNS}
                """),
                {"user_id": user_id, "specialist_type": specialist_type},
            ).mappings().first()
            session.commit()
            conversation = Conversation.from_dict(dict(row))
            logger.debug("Created conversation {} for {}", conversation.id, user_id)
            return conversation
        except Exception as e:
            session.rollback()
            logger.error("Failed to create conversation: {}", e)
            raise
        finally:
            session.close()

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        session = self.session_factory()
        try:
            row = session.execute(
                text(f"""
                    SELECT {_CONVERSATION_COLUMNS}
                    FROM advisor_conversations
                    WHERE id = CAST(:id AS uuid)
                """),
                {"id": conversation_id},
            ).mappings().first()
            return Conversation.from_dict(dict(row)) if row else None
        finally:
            session.close()

    def list_conversations(self, user_id: str, limit: int) -> List[Conversation]:
        """Most recently active conversations first."""
        session = self.session_factory()
        try:
            rows = session.execute(
                text(f"""
                    SELECT {_CONVERSATION_COLUMNS}
                    FROM advisor_conversations
                    WHERE user_id = :user_id
                    ORDER BY updated_at DESC
                    LIMIT :limit
                """),
                {"user_id": user_id, "limit": limit},
            ).mappings().all()
            return [Conversation.from_dict(dict(r)) for r in rows]
        finally:
            session.close()

    def append_message(self, message: Message) -> Message:
        """
        Append a message and bump the conversation's ``updated_at``.

        Both statements commit together. Returns the stored message with
        its server-assigned ``id``, ``seq`` and ``created_at``.
        """
        session = self.session_factory()
        try:
            row = session.execute(
                text(f"""
                    INSERT INTO advisor_messages
                        (conversation_id, role, content, image_urls, specialist_type, status)
                    VALUES
                        (CAST(:conversation_id AS uuid), :role, :content,
                         :image_urls, :specialist_type, :status)
                    RETURNING {_MESSAGE_COLUMNS}
                """),
                {
                    "conversation_id": message.conversation_id,
                    "role": message.role,
                    "content": message.content,
                    "image_urls": list(message.image_urls),
                    "specialist_type": message.specialist_type,
                    "status": message.status,
                },
            ).mappings().first()
            session.execute(
                text("""
                    UPDATE advisor_conversations
                    SET updated_at = NOW()
                    WHERE id = CAST(:id AS uuid)
                """),
                {"id": message.conversation_id},
            )
            session.commit()
            stored = Message.from_dict(dict(row))
            logger.debug(
                "Appended {} message seq={} to {}",
                stored.role, stored.seq, stored.conversation_id,
            )
            return stored
        except Exception as e:
            session.rollback()
            logger.error("Failed to append message: {}", e)
            raise
        finally:
            session.close()

    def load_messages(self, conversation_id: str, limit: int) -> List[Message]:
        """Return the most recent ``limit`` messages, oldest first."""
        session = self.session_factory()
        try:
            rows = session.execute(
                text(f"""
                    SELECT {_MESSAGE_COLUMNS}
                    FROM advisor_messages
                    WHERE conversation_id = CAST(:conversation_id AS uuid)
                    ORDER BY seq DESC
                    LIMIT :limit
                """),
                {"conversation_id": conversation_id, "limit": limit},
            ).mappings().all()
            return [Message.from_dict(dict(r)) for r in reversed(rows)]
        finally:
            session.close()

    def set_title_if_missing(self, conversation_id: str, title: str) -> bool:
        """
        Write the title only if none is set yet.

        Returns:
            True if this call set the title, False if one already existed.
        """
        session = self.session_factory()
        try:
            result = session.execute(
                text("""
                    UPDATE advisor_conversations
                    SET title = :title
                    WHERE id = CAST(:id AS uuid) AND title IS NULL
                """),
                {"id": conversation_id, "title": title},
            )
            session.commit()
            updated = (result.rowcount or 0) > 0
            if updated:
                logger.info("Titled conversation {}: {}", conversation_id, title)
            return updated
        except Exception as e:
            session.rollback()
            logger.error("Failed to set title: {}", e)
            raise
        finally:
            session.close()

    def save_specialist_insight(self, insight: SpecialistInsight) -> None:
        session = self.session_factory()
        try:
            session.execute(
                text("""
                    INSERT INTO specialist_insights
                        (conversation_id, specialist_type, insight_type, data)
                    VALUES
                        (CAST(:conversation_id AS uuid), :specialist_type,
                         :insight_type, CAST(:data AS jsonb))
                """),
                {
                    "conversation_id": insight.conversation_id,
                    "specialist_type": insight.specialist_type,
                    "insight_type": insight.insight_type,
                    "data": json.dumps(insight.data),
                },
            )
            session.commit()
            logger.debug(
                "Saved {} insight for {}", insight.specialist_type, insight.conversation_id
            )
        except Exception as e:
            session.rollback()
            logger.error("Failed to save specialist insight: {}", e)
            raise
        finally:
            session.close()
