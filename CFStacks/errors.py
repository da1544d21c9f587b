"""
Common exception types for stack operations.
"""


class StackForgeError(Exception):
    """Base exception for errors the CLI reports to the operator"""
    pass
