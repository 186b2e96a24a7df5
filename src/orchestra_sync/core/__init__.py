"""Core synchronization logic.

- filesystem: scanning trees into snapshots and safe file operations
- sync: diffing, conflict resolution, execution and orchestration
"""

__all__: list[str] = []
