"""
StaffDesk - staff moderation workflow engine

StaffDesk runs the disciplinary and support workflows of a community staff team.
Every operation is gated by a strict rank hierarchy.

Core Components:

- **Ranks**: Static rank directory, permission resolution and the fixed
  escalation table used to route staff reports
- **Tickets**: Support requests with claim, priority, participants, elevation
  and inactivity auto-close
- **Offices**: Internal affairs investigations with outcome selection and
  post-close channel disposition
- **Infractions**: Approval-gated disciplinary actions with role enforcement,
  suspension expiry and manual restoration
- **Reconciliation**: Periodic sweeps that expire suspensions, age out idle
  tickets and release scheduled channel deletions

Usage:
    from staffdesk.main import main
    main()  # Starts the Discord adapter and the reconciliation loops
"""
