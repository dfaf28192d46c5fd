# dotvault Output Module
# Rich console output

from dotvault.output.console import Console, create_console

__all__ = [
    "Console",
    "create_console",
]
