"""
Parchi Actions.
Starts a bill scan and phrases its outcome.
"""

import logging

from kuber.core.intent import Intent
from kuber.core.text import format_quantity
from kuber.services.vision import ParchiData
from kuber.tools.registry import Action, ActionContext, ActionReply, ActionRouter

logger = logging.getLogger(__name__)

SCAN_STARTED = "Camera opening for parchi scan..."
SCAN_UNAVAILABLE = "Camera abhi available nahi hai. Parchi ki photo upload karein."
SCAN_UNREADABLE = "Sorry, parchi read nahi ho rahi. Clear photo lein."
SCAN_NO_ITEMS = "Parchi padh li, par koi item nahi mila. Items saaf likhe hon to dobara scan karein."


def summarize_parchi(data: ParchiData) -> str:
    """Follow-up message for a finished scan."""
    if not data.items:
        return SCAN_NO_ITEMS

    item_list = ", ".join(
        f"{item.product} ({format_quantity(item.quantity) if item.quantity else 1})"
        for item in data.items
    )
    return f"Parchi se {len(data.items)} items mile: {item_list}. Order banaoon?"


async def parchi_scan_handler(ctx: ActionContext) -> ActionReply:
    """
    Ask the session to capture and scan a parchi.

    The scan runs in the background; its result arrives later as a
    separate assistant message.
    """
    session = ctx.session
    if session is None or not session.request_parchi_scan():
        return ActionReply(SCAN_UNAVAILABLE, grounded=False)
    return ActionReply(SCAN_STARTED)


async def register_parchi_actions(router: ActionRouter):
    """Register parchi actions with the router."""

    router.register(Action(
        intent=Intent.PARCHI_SCAN,
        name="scan_parchi",
        description="Open the camera and read items off a handwritten bill.",
        handler=parchi_scan_handler
    ))

    logger.info("Parchi actions registered")
