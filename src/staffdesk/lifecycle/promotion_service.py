"""
Rank changes (promotions and demotions).

A rank change swaps the member's rank role (and category role when the
category changes) and leaves an immutable :class:`Promotion` record behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from staffdesk.configuration.workflow_settings import PromotionSettings
from staffdesk.datatypes.case_datatypes import AuditAction, Notice, NoticeEvent, Promotion
from staffdesk.datatypes.rank_datatypes import Rank, StaffMember
from staffdesk.errors import InvalidArgument, PermissionDenied, TargetNotStaff, case_operation
from staffdesk.lifecycle.lifecycle_base import LifecycleBase
from staffdesk.ranks.permission_resolver import PermissionPreset
from staffdesk.services.side_effects import SideEffectReport
from staffdesk.util.logger import get_logger

logger = get_logger("promotion_service")


@dataclass(slots=True)
class RankChangeOutcome:
    promotion: Promotion
    effects: SideEffectReport = field(default_factory=SideEffectReport)


class PromotionService(LifecycleBase):
    """Promotes and demotes staff members.

    Args:
        settings: Minimum reason length.
        staff_log_channel: Channel receiving rank change notices.
    """

    def __init__(
        self,
        *args,
        settings: PromotionSettings | None = None,
        staff_log_channel: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.settings = settings or PromotionSettings()
        self.staff_log_channel = staff_log_channel

    def lock_key(self, case_id: str) -> str:
        return f"member:{case_id}"

    def promotion_options(self, current_rank_key: str) -> Tuple[Rank, ...]:
        """Ranks a holder of ``current_rank_key`` can be promoted to.

        Higher ranks of the same category; at the top of a category, the entry
        rank of the next category. Empty for the top rank or an unknown key.
        """
        directory = self.resolver.directory
        current = directory.rank_of(current_rank_key)
        if current is None:
            return ()

        same_category = tuple(r for r in directory.ranks_in_category(current.category) if r.level > current.level)
        if same_category:
            return same_category

        categories = directory.categories_in_order()
        index = categories.index(current.category)
        if index + 1 >= len(categories):
            return ()
        return directory.ranks_in_category(categories[index + 1])[:1]

    @case_operation("PROMOTIONS")
    async def promote(self, actor: StaffMember, staff_id: str, new_rank_key: str, reason: str) -> RankChangeOutcome:
        return await self.change_rank(actor, staff_id, new_rank_key, reason, upward=True)

    @case_operation("PROMOTIONS")
    async def demote(self, actor: StaffMember, staff_id: str, new_rank_key: str, reason: str) -> RankChangeOutcome:
        return await self.change_rank(actor, staff_id, new_rank_key, reason, upward=False)

    @case_operation("PROMOTIONS")
    async def history(self, staff_id: str) -> List[Promotion]:
        return await self.persist(self.store.list_promotions(str(staff_id)), f"list promotions of {staff_id}")

    async def change_rank(
        self,
        actor: StaffMember,
        staff_id: str,
        new_rank_key: str,
        reason: str,
        upward: bool,
    ) -> RankChangeOutcome:
        verb = "promote" if upward else "demote"
        self.resolver.authorize(actor, PermissionPreset.DIRECTOR_PLUS, action=f"{verb} staff members")
        staff_id = str(staff_id)

        reason = (reason or "").strip()
        if len(reason) < self.settings.min_reason_length:
            raise InvalidArgument(
                f"Please provide a reason of at least {self.settings.min_reason_length} characters."
            )

        directory = self.resolver.directory
        new_rank = directory.rank_of(new_rank_key)
        if new_rank is None:
            raise InvalidArgument(f"Unknown rank {new_rank_key!r}.")

        async with self.locks.hold(self.lock_key(staff_id)):
            held = await self.member_keys(staff_id)
            current = self.resolver.highest_rank(held)
            if current is None:
                raise TargetNotStaff(f"{staff_id} does not hold a staff rank.")

            if upward and new_rank.level <= current.level:
                raise InvalidArgument(f"{new_rank.name} is not above {current.name}.")
            if not upward and new_rank.level >= current.level:
                raise InvalidArgument(f"{new_rank.name} is not below {current.name}.")

            if not self.resolver.is_overridden(actor):
                actor_level = self.resolver.member_level(actor.rank_keys)
                if new_rank.level > actor_level:
                    raise PermissionDenied("You cannot assign a rank above your own.")
                if current.level > actor_level:
                    raise PermissionDenied(f"You cannot {verb} a member ranked above you.")

            promotion = Promotion(
                id=await self.new_id("promotion"),
                staff_id=staff_id,
                old_rank=current.key,
                new_rank=new_rank.key,
                reason=reason,
                promoter_id=actor.member_id,
                timestamp=self.clock(),
            )
            await self.persist(self.store.insert_promotion(promotion), f"record rank change of {staff_id}")

            effects = SideEffectReport()
            for key in sorted(held):
                if directory.is_rank(key) and key != new_rank.key:
                    await self.effects.revoke(effects, staff_id, key)
            if current.category is not new_rank.category:
                await self.effects.revoke(effects, staff_id, directory.category_role(current.category))
                await self.effects.grant(effects, staff_id, directory.category_role(new_rank.category))
            await self.effects.grant(effects, staff_id, new_rank.key)

        await self.audit(
            AuditAction.RANK_CHANGED,
            actor.member_id,
            staff_id,
            {"from": current.key, "to": new_rank.key, "reason": reason, "direction": verb},
        )
        notice = Notice(
            event=NoticeEvent.RANK_CHANGED,
            details={
                "staff_id": staff_id,
                "old_rank": current.name,
                "new_rank": new_rank.name,
                "changed_by": actor.member_id,
                "reason": reason,
            },
        )
        await self.effects.notify(effects, staff_id, notice)
        await self.effects.log(effects, self.staff_log_channel, notice)

        logger.info("[PROMOTIONS] %s %sd %s: %s -> %s", actor.member_id, verb, staff_id, current.key, new_rank.key)
        return RankChangeOutcome(promotion=promotion, effects=effects)
