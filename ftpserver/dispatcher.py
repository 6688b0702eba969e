from collections import namedtuple
from types import MappingProxyType

import ftpserver.commands as command

Command = namedtuple("Command", ["verb", "args"])

# Allowed before login
PUBLIC_COMMANDS = frozenset({"USER", "PASS", "QUIT"})


def parse_command(line):
    """
    Splits a control line into an upper-case verb and its arguments.
    Returns None for a blank line.
    """
    parts = line.split()
    if not parts:
        return None
    return Command(parts[0].upper(), tuple(parts[1:]))


class CommandDispatcher:
    def __init__(self):
        self.handlers = MappingProxyType({
            "USER": command.cmd_USER,
            "PASS": command.cmd_PASS,
            "PWD": command.cmd_PWD,
            "CWD": command.cmd_CWD,
            "CDUP": command.cmd_CDUP,
            "MKD": command.cmd_MKD,
            "RMD": command.cmd_RMD,
            "PASV": command.cmd_PASV,
            "LIST": command.cmd_LIST,
            "STOR": command.cmd_STOR,
            "RETR": command.cmd_RETR,
            "DELE": command.cmd_DELE,
            "TYPE": command.cmd_TYPE,
            "QUIT": command.cmd_QUIT,
        })

    def dispatch(self, cmd, session):
        """
        Runs one command to completion, replies included.
        Returns True if the connection must be closed (QUIT).
        """
        if cmd.verb == "AUTH" and cmd.args and cmd.args[0].upper() == "TLS":
            session.reply("502 Command not supported.")
            return False
        handler = self.handlers.get(cmd.verb)
        if handler is None:
            session.reply("502 Command does not exist.")
            return False
        if cmd.verb not in PUBLIC_COMMANDS and not session.state.authenticated:
            session.reply("530 Please log in.")
            return False
        return bool(handler(cmd.args, session))
