"""
General Actions.
Open questions go to the session's language model.
"""

import logging

from kuber.core.exceptions import LLMException
from kuber.core.intent import Intent
from kuber.tools.registry import Action, ActionContext, ActionReply, ActionRouter, help_message

logger = logging.getLogger(__name__)


async def general_handler(ctx: ActionContext) -> ActionReply:
    """
    Answer with the active language model, or the static help text
    when there is no model or it fails.
    """
    session = ctx.session
    if session is None or not session.has_model:
        return ActionReply(help_message(ctx.language), grounded=False)

    try:
        reply = await session.complete(session.history_for_model())
    except LLMException as e:
        logger.warning(f"Model reply failed, using help text: {e.message}")
        return ActionReply(help_message(ctx.language), grounded=False)

    return ActionReply(reply or help_message(ctx.language), grounded=False)


async def register_general_actions(router: ActionRouter):
    """Register the fallback action with the router."""

    router.register(Action(
        intent=Intent.UNKNOWN,
        name="general_query",
        description="Anything not covered by a business action.",
        handler=general_handler,
        attach_trigger=False
    ))

    logger.info("General actions registered")
