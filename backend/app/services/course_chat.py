"""
Course chat orchestration.

One request runs to completion in a single pass:

    enrollment -> rate limit -> session -> user message (committed)
    -> knowledge document -> knowledge text -> prompt -> model -> assistant message

The user message is committed before the knowledge base and model are
touched, so a later failure leaves it without an assistant reply.
"""

import logging
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import ChatRole
from app.errors import ForbiddenError, NotFoundError, TooManyRequestsError
from app.schemas.course_chat import CourseChatRequest, CourseChatResponse, HistoryItem
from app.services import chat_sessions, rate_limiter
from app.services.gemini import GeminiClient
from app.services.knowledge_base import KnowledgeBaseService, get_document

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful course assistant. Answer questions based ONLY on the provided course knowledge base.\n"
    "If the answer is not in the knowledge base, politely say you don't have that information in the course materials.\n"
    "Be concise, clear, and educational in your responses."
)


def build_prompt(knowledge_text: str, history: Sequence[HistoryItem], question: str) -> str:
    """System instruction, knowledge block, role-labelled prior turns and the new question."""
    history_text = "\n\n".join(f"{item.role.upper()}: {item.content}" for item in history)
    return (
        f"{SYSTEM_PROMPT}\n\n"
        f"COURSE KNOWLEDGE BASE:\n\n{knowledge_text}\n\n"
        f"PREVIOUS CONVERSATION:\n{history_text}\n\n"
        f"QUESTION:\n{question}"
    )


def parse_session_id(raw: str | None) -> UUID | None:
    """Client-supplied session id; malformed ids are treated as absent."""
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError:
        return None


class CourseChatService:
    """Answers a learner's question about a course from its knowledge base."""

    def __init__(
        self,
        knowledge: KnowledgeBaseService,
        model: GeminiClient,
        *,
        rate_limit_per_minute: int = 10,
    ):
        self.knowledge = knowledge
        self.model = model
        self.rate_limit_per_minute = rate_limit_per_minute

    async def answer(
        self,
        db: AsyncSession,
        user_id: UUID,
        request: CourseChatRequest,
    ) -> CourseChatResponse:
        """
        Run one chat turn for an authenticated caller.

        Raises:
            ForbiddenError: Caller is not enrolled in the course
            TooManyRequestsError: Rate limit exceeded (nothing is persisted)
            NotFoundError: Course has no knowledge document
            UnsupportedFormatError, ExtractionFailedError, UpstreamError, InternalError
        """
        course_id = request.course_id

        if not await chat_sessions.is_enrolled(db, user_id, course_id):
            raise ForbiddenError("User not enrolled in course")

        if not await rate_limiter.allow(db, user_id, course_id, self.rate_limit_per_minute):
            raise TooManyRequestsError("Rate limit exceeded. Try again in a minute.")

        session = await chat_sessions.resolve_session(
            db, user_id, course_id, parse_session_id(request.session_id)
        )
        await chat_sessions.append_message(db, session, ChatRole.USER, request.message)
        await db.commit()

        document = await get_document(db, course_id)
        if document is None or not document.file_url:
            raise NotFoundError("No knowledge base document for this course")

        knowledge_text = await self.knowledge.load_text(db, document)
        await db.commit()

        prompt = build_prompt(knowledge_text, request.conversation_history, request.message)
        response_text = await self.model.generate(prompt)

        await chat_sessions.append_message(db, session, ChatRole.ASSISTANT, response_text)
        await db.commit()

        logger.info(
            "Answered chat for user %s in course %s (session %s)", user_id, course_id, session.id
        )
        return CourseChatResponse(session_id=session.id, response=response_text)
