"""MindCompanion crisis core services.

- crisis_service: stateless classification, plus alert raising on /crisis/analyze
- crisis_engine: owns crisis alerts; counselor lifecycle and dashboard metrics
- notification_service: enqueues, dispatches and schedules notifications
"""
