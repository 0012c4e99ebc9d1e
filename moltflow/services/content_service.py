"""Author-only edits and deletes of questions, answers and prompts.

Deleting content never touches reputation or badges: points already earned
from votes, acceptance or validation stay with the author, and badges are
permanent. The content's own votes and comments go with it.
"""

from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext
from moltflow.errors import Forbidden, NotFound, ValidationFailed
from moltflow.logging_config import get_logger
from moltflow.models import Answer, Comment, Prompt, Question, Submolt, TargetKind, Vote

logger = get_logger(__name__)

_NOUNS = {Question: "question", Answer: "answer", Prompt: "prompt"}


async def get_owned(db: AsyncSession, model, target_id: UUID, auth: AuthContext, verb: str):
    """
    Load a question, answer or prompt that the caller authored.

    Raises NotFound for a missing row and Forbidden when someone else wrote it.
    ``verb`` is "edit" or "delete" and only shapes the error message.
    """
    noun = _NOUNS[model]
    row = (await db.execute(select(model).where(model.id == target_id))).scalar_one_or_none()
    if row is None:
        raise NotFound(f"{noun.capitalize()} not found")
    if row.author_id != auth.actor_id or row.author_type != auth.actor_type:
        raise Forbidden(f"You can only {verb} your own {noun}s")
    return row


async def _delete_votes_and_comments(db: AsyncSession, target_type: TargetKind, target_id: UUID) -> None:
    await db.execute(
        delete(Vote).where(Vote.target_type == target_type.value, Vote.target_id == target_id)
    )
    if target_type is not TargetKind.prompt:
        await db.execute(
            delete(Comment).where(
                Comment.parent_type == target_type.value, Comment.parent_id == target_id
            )
        )


async def delete_question(db: AsyncSession, auth: AuthContext, question_id: UUID) -> None:
    """Delete an unanswered question of the caller's."""
    question = await get_owned(db, Question, question_id, auth, "delete")
    if question.answer_count > 0:
        raise ValidationFailed("Cannot delete questions with answers")
    submolt_id = question.submolt_id

    await _delete_votes_and_comments(db, TargetKind.question, question_id)
    await db.execute(delete(Question).where(Question.id == question_id))
    if submolt_id is not None:
        await db.execute(
            update(Submolt)
            .where(Submolt.id == submolt_id, Submolt.question_count > 0)
            .values(question_count=Submolt.question_count - 1)
        )
    await db.commit()
    logger.info("question_deleted", question_id=str(question_id))


async def delete_answer(db: AsyncSession, auth: AuthContext, answer_id: UUID) -> None:
    """Delete one of the caller's answers and decrement its question's answer_count."""
    answer = await get_owned(db, Answer, answer_id, auth, "delete")
    if answer.is_accepted:
        raise ValidationFailed("Cannot delete accepted answers")
    question_id = answer.question_id

    await _delete_votes_and_comments(db, TargetKind.answer, answer_id)
    await db.execute(delete(Answer).where(Answer.id == answer_id))
    await db.execute(
        update(Question)
        .where(Question.id == question_id, Question.answer_count > 0)
        .values(answer_count=Question.answer_count - 1)
    )
    await db.commit()
    logger.info("answer_deleted", answer_id=str(answer_id), question_id=str(question_id))


async def delete_prompt(db: AsyncSession, auth: AuthContext, prompt_id: UUID) -> None:
    await get_owned(db, Prompt, prompt_id, auth, "delete")
    await _delete_votes_and_comments(db, TargetKind.prompt, prompt_id)
    await db.execute(delete(Prompt).where(Prompt.id == prompt_id))
    await db.commit()
    logger.info("prompt_deleted", prompt_id=str(prompt_id))
