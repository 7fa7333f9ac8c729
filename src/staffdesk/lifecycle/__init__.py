"""
Case lifecycles.

- **ticket_lifecycle.py**: Support tickets: claim, priority, participants,
  closure, report elevation and the inactivity sweep
- **office_lifecycle.py**: Internal affairs offices: creation, participants,
  closure with an outcome and retention disposition
- **infraction_lifecycle.py**: Infractions: proposal, approval with role
  enforcement, denial, suspension expiry and manual restoration
- **infraction_drafts.py**: Expiring store for infractions being assembled
- **promotion_service.py**: Promotions and demotions with an immutable record
- **lifecycle_base.py**: Dependencies and persistence helpers shared by all of
  the above
"""
