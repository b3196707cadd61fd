"""MindCompanion crisis core.

Services:
- crisis_service: keyword lexicon and crisis classifier
- crisis_engine: crisis alert lifecycle and dashboard metrics
- notification_service: enqueueing and dispatching multi-channel notifications

All services hash user identifiers with hash_pii() before logging.
"""
