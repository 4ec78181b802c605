"""
In-process stores and on-disk storage.

- tasks / users: lock-guarded stores shared by all request workers
- persistence: atomic JSON snapshot of the task list
- files: sandboxed upload admission and stored-file access
"""
