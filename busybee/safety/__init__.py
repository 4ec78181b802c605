"""
Trust-boundary primitives: validated value types, HTML sanitizing and the
path sandbox.
"""

from busybee.safety.values import (
    CommentText,
    ImageName,
    Password,
    ResponsibilityName,
    TaskDescription,
    TaskName,
    Username,
)

__all__ = [
    "CommentText",
    "ImageName",
    "Password",
    "ResponsibilityName",
    "TaskDescription",
    "TaskName",
    "Username",
]
