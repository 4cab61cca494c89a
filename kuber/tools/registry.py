"""
Action Registry and Router.
Maps detected intents to business handlers and turns their results
into spoken replies.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from kuber.config import get_settings
from kuber.core.exceptions import ToolNotFoundException
from kuber.core.intent import Intent, IntentResult
from kuber.core.text import append_trigger
from kuber.db.store import RecordStore

logger = logging.getLogger(__name__)
settings = get_settings()


APOLOGIES = {
    Intent.INVENTORY_CHECK: "Stock information nahi mil raha. Please try again.",
    Intent.LOW_STOCK_ALERT: "Stock information nahi mil raha. Please try again.",
    Intent.PLACE_ORDER: "Order place nahi ho raha. Please try again.",
    Intent.PROFIT_ANALYSIS: "Profit information nahi mil raha.",
    Intent.UDHAR_KHATA: "Udhar-khata information nahi mil raha.",
    Intent.SHIPPING_QUERY: "Shipping rates nahi mil rahe. Please try again.",
    Intent.PARCHI_SCAN: "Sorry, parchi read nahi ho rahi. Clear photo lein.",
    Intent.UNKNOWN: "Sorry, kuch galat ho gaya. Please try again.",
}

# Hindi and English sessions get one generic apology each
LANGUAGE_APOLOGIES = {
    "hi": "माफ़ कीजिए, अभी यह जानकारी नहीं मिल रही। कृपया फिर से कोशिश करें।",
    "en": "Sorry, I couldn't get that information right now. Please try again.",
}

HELP_MESSAGES = {
    "hinglish": "Namaste! Main Kuber AI hoon. Stock check, order place, ya profit dekhne ke liye bolein.",
    "hi": "नमस्ते! मैं कुबेर AI हूं। स्टॉक देखने, ऑर्डर करने या मुनाफा जानने के लिए बोलिए।",
    "en": "Hello! I'm Kuber AI. Ask me to check stock, place an order or show your profit.",
}


def apology_for(intent: Intent, language: Optional[str] = None) -> str:
    """Apologetic reply for a failed action, in the session's register."""
    if language in LANGUAGE_APOLOGIES:
        return LANGUAGE_APOLOGIES[language]
    return APOLOGIES.get(intent, APOLOGIES[Intent.UNKNOWN])


def help_message(language: Optional[str] = None) -> str:
    return HELP_MESSAGES.get(language or "", HELP_MESSAGES["hinglish"])


@dataclass
class ActionReply:
    """
    Handler result.

    grounded is False when the reply is not backed by shop data
    (nothing found, a question back to the user); the router only
    attaches UI triggers to grounded replies.
    """
    text: str
    grounded: bool = True


@dataclass
class ActionContext:
    """Everything a handler may look at for one turn."""
    result: IntentResult
    text: str
    store: RecordStore
    session: Any = None
    language: str = "hinglish"

    @property
    def entities(self):
        return self.result.entities


ActionHandler = Callable[[ActionContext], Awaitable[Union[ActionReply, str]]]


@dataclass
class Action:
    """Business action bound to an intent."""
    intent: Intent
    name: str
    description: str
    handler: ActionHandler
    attach_trigger: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent.value,
            "name": self.name,
            "description": self.description,
        }


class ActionRouter:
    """
    Router from intents to business actions.

    Actions are registered per intent. handle() never raises: handler
    failures become an apology in the session's language.
    """

    def __init__(self, store: Optional[RecordStore] = None):
        self._actions: Dict[Intent, Action] = {}
        self.store = store or RecordStore()

    async def initialize(self):
        """Register all business actions."""
        logger.info("Initializing action router...")

        from kuber.tools.inventory import register_inventory_actions
        from kuber.tools.orders import register_order_actions
        from kuber.tools.profit import register_profit_actions
        from kuber.tools.udhar import register_udhar_actions
        from kuber.tools.shipping import register_shipping_actions
        from kuber.tools.parchi import register_parchi_actions
        from kuber.tools.general import register_general_actions

        await register_inventory_actions(self)
        await register_order_actions(self)
        await register_profit_actions(self)
        await register_udhar_actions(self)
        await register_shipping_actions(self)
        await register_parchi_actions(self)
        await register_general_actions(self)

        logger.info(f"Registered {len(self._actions)} actions: {[a.name for a in self._actions.values()]}")

    def register(self, action: Action):
        """Register an action. A later registration for the same intent replaces it."""
        self._actions[action.intent] = action
        logger.debug(f"Registered action: {action.name} for {action.intent.value}")

    def get(self, intent: Intent) -> Optional[Action]:
        return self._actions.get(intent)

    def describe(self) -> List[Dict[str, Any]]:
        return [action.to_dict() for action in self._actions.values()]

    async def handle(
        self,
        result: IntentResult,
        raw_text: str,
        session: Any = None
    ) -> str:
        """
        Run the action for a detected intent.

        Args:
            result: Intent detection result
            raw_text: The user's text as typed or committed
            session: Optional conversation session for context

        Returns:
            Reply text, with the intent's UI trigger when grounded
        """
        language = getattr(session, "selected_language", None) or settings.DEFAULT_LANGUAGE
        start_time = time.time()

        try:
            action = self._actions.get(result.intent) or self._actions.get(Intent.UNKNOWN)
            if action is None:
                raise ToolNotFoundException(result.intent.value)

            context = ActionContext(
                result=result,
                text=raw_text,
                store=self.store,
                session=session,
                language=language,
            )
            reply = await action.handler(context)
            if isinstance(reply, str):
                reply = ActionReply(text=reply)

            text = reply.text
            if reply.grounded and action.attach_trigger:
                text = append_trigger(text, result.trigger)

            execution_time = (time.time() - start_time) * 1000
            logger.info(f"Action {action.name} executed in {execution_time:.2f}ms")
            return text

        except Exception as e:
            logger.error(f"Action error for {result.intent.value}: {e}")
            return apology_for(result.intent, language)
