"""Conversation repository - sessions and the interaction transcript"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ConversationSession, Interaction


class ConversationRepository:
    """Repository for conversation sessions and interactions"""

    @staticmethod
    def get_session(db: Session, professional_id: str, phone_number: str) -> Optional[ConversationSession]:
        return (
            db.query(ConversationSession)
            .filter(
                ConversationSession.professional_id == professional_id,
                ConversationSession.phone_number == phone_number,
            )
            .first()
        )

    @staticmethod
    def stage_session_state(
        db: Session,
        professional_id: str,
        phone_number: str,
        current_state: str,
        is_active: bool,
        message_at: datetime,
    ) -> ConversationSession:
        """Insert or update the session row without committing"""
        session = ConversationRepository.get_session(db, professional_id, phone_number)
        if session is None:
            session = ConversationSession(professional_id=professional_id, phone_number=phone_number)
            db.add(session)
        session.current_state = current_state
        session.is_active = is_active
        session.last_message_at = message_at
        return session

    @staticmethod
    def stage_interaction(db: Session, **interaction_data) -> Interaction:
        """Append a transcript entry without committing"""
        interaction = Interaction(**interaction_data)
        db.add(interaction)
        return interaction

    @staticmethod
    def external_message_exists(db: Session, professional_id: str, external_message_id: str) -> bool:
        return (
            db.query(Interaction.id)
            .filter(
                Interaction.professional_id == professional_id,
                Interaction.external_message_id == external_message_id,
            )
            .first()
            is not None
        )
