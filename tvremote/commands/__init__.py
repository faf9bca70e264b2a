"""TV command vocabulary."""

from tvremote.commands.tv_commands import COMMON_APPS, REMOTE_ACTIONS, TVCommands, first_success

__all__ = ["COMMON_APPS", "REMOTE_ACTIONS", "TVCommands", "first_success"]
