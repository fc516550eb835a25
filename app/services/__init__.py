"""
Services.

Business logic layer of the retry worker.

- audit_log_service: audit trail writer
- notification_service: in-app notifications
- webhook_event_service: webhook event store and retry bookkeeping
- webhook_dispatch: Stripe event handlers and routing
- retry_service: webhook and payout retry cycles
"""
