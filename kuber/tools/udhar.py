"""
Udhar-Khata Actions.
Credit ledger: who owes the shop how much.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from kuber.core.intent import Intent
from kuber.core.text import format_inr
from kuber.db.models import UdharEntry
from kuber.db.store import RecordStore
from kuber.tools.registry import Action, ActionContext, ActionReply, ActionRouter

logger = logging.getLogger(__name__)

ENTRY_TYPES = ("credit", "payment")


@dataclass
class PartyBalance:
    party_name: str
    amount: float


def _net(entries: List[UdharEntry]) -> float:
    total = 0.0
    for entry in entries:
        if entry.type == "credit":
            total += entry.amount
        else:
            total -= entry.amount
    return total


class UdharLedger:
    """Credit entries add to a party's balance; payments reduce it."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def add_entry(
        self,
        party_name: str,
        amount: float,
        entry_type: str = "credit",
        description: Optional[str] = None
    ) -> UdharEntry:
        if entry_type not in ENTRY_TYPES:
            raise ValueError(f"Unknown udhar entry type: {entry_type}")
        if amount <= 0:
            raise ValueError("Udhar amount must be positive")

        entry = await self.store.insert("udhar_khata", {
            "party_name": party_name,
            "amount": amount,
            "type": entry_type,
            "description": description,
        })
        logger.info(f"Udhar {entry_type} of {amount} recorded for {party_name}")
        return entry

    async def entries_for(self, party_name: Optional[str] = None) -> List[UdharEntry]:
        """All entries, or one party's entries (name matched case-insensitively)."""
        entries = await self.store.get_all("udhar_khata")
        if party_name is None:
            return entries
        wanted = party_name.lower().strip()
        return [e for e in entries if e.party_name.lower() == wanted]

    async def outstanding(self) -> List[PartyBalance]:
        """Net unsettled balance per party, positive balances only."""
        unsettled = await self.store.filter("udhar_khata", is_settled=False)

        by_party: Dict[str, List[UdharEntry]] = {}
        for entry in unsettled:
            by_party.setdefault(entry.party_name, []).append(entry)

        balances = [PartyBalance(party, _net(entries)) for party, entries in by_party.items()]
        return [b for b in balances if b.amount > 0]

    async def balance_for(self, party_name: str) -> float:
        entries = await self.entries_for(party_name)
        return _net([e for e in entries if not e.is_settled])

    async def settle(self, party_name: str) -> int:
        """Mark a party's open entries settled. Returns how many changed."""
        entries = [e for e in await self.entries_for(party_name) if not e.is_settled]
        for entry in entries:
            await self.store.update_fields("udhar_khata", entry.id, {
                "is_settled": True,
                "settled_at": datetime.now(),
            })
        return len(entries)


async def udhar_handler(ctx: ActionContext) -> ActionReply:
    """
    Report outstanding credit.

    A party entity that matches ledger entries gets that party's
    balance; anything else gets the shop-wide total.
    """
    ledger = UdharLedger(ctx.store)
    party = ctx.entities.party

    if party and await ledger.entries_for(party):
        if ctx.session is not None:
            ctx.session.context.last_party = party
        balance = await ledger.balance_for(party)
        name = party.title()
        if balance > 0:
            return ActionReply(f"{name} ka {format_inr(balance)} udhar baki hai.")
        return ActionReply(f"{name} ka koi udhar baki nahi hai. Sab clear hai!")

    outstanding = await ledger.outstanding()
    if not outstanding:
        return ActionReply("Koi outstanding udhar nahi hai. Sab clear hai!", grounded=False)

    total = sum(b.amount for b in outstanding)
    return ActionReply(
        f"Total {format_inr(total)} udhar baki hai. {len(outstanding)} parties se recover karna hai."
    )


async def register_udhar_actions(router: ActionRouter):
    """Register udhar-khata actions with the router."""

    router.register(Action(
        intent=Intent.UDHAR_KHATA,
        name="udhar_khata",
        description="Outstanding credit for one party or the whole shop.",
        handler=udhar_handler
    ))

    logger.info("Udhar-khata actions registered")
