"""
Periodic work subsystem.

Components:
- models.py: data structures (TaskDefinition, RegistryEntry, TaskRun, enums)
- registry.py: SQLite-backed durable registry + run history
- scheduler.py: enqueue_periodic (keep-existing / replace) and cancel
- retry.py: bounded retry state machine and backoff
- executor.py: runs one claimed invocation and persists its outcome
- runner.py: polling loop that claims due work (single-flight per name)
- boot.py: boot listener / reconciliation of desired schedules
"""
