"""Prefix command parsing and dispatch for Slack message events.

A message is a command when its text starts with the configured prefix, e.g.
`elk!ingest C0123456789`. The word after the prefix selects the command and
the remaining words are bound, in order, to the fields of the command's
pydantic argument model.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

Reply = Callable[[str, str], None]
"""Posts `text` into `channel_id`: reply(channel_id, text)."""

CommandCallback = Callable[[Dict[str, Any], Any], Any]


class NoArgs(BaseModel):
    """Argument model for commands without arguments."""


@dataclass
class Command:
    """A registered command."""

    name: str
    description: str
    handler: CommandCallback
    args_model: Type[BaseModel]

    def usage(self, prefix: str) -> str:
        fields = " ".join(f"<{name}>" for name in self.args_model.model_fields)
        return f"Usage: {prefix}{self.name} {fields}".rstrip()

    def bind(self, tokens: List[str]) -> BaseModel:
        """Bind positional tokens to the argument model.

        Raises:
            ValueError: On a wrong number of tokens.
            ValidationError: If the model rejects a value.
        """
        names = list(self.args_model.model_fields)
        if len(tokens) != len(names):
            raise ValueError(f"expected {len(names)} argument(s), got {len(tokens)}")
        return self.args_model(**dict(zip(names, tokens)))


class CommandParser:
    """Registry of prefix commands with a built-in `help` command."""

    def __init__(self, prefix: str, reply: Reply) -> None:
        if not prefix:
            raise ValueError("Command prefix must not be empty")
        self.prefix = prefix
        self.reply = reply
        self.commands: Dict[str, Command] = {}
        self.register("help", "List available commands.", self._help, NoArgs)

    def register(
        self,
        name: str,
        description: str,
        handler: CommandCallback,
        args_model: Type[BaseModel] = NoArgs,
    ) -> Command:
        command = Command(name=name, description=description, handler=handler, args_model=args_model)
        self.commands[name] = command
        logger.debug(f"Registered command {self.prefix}{name}")
        return command

    def parse(self, text: str) -> Optional[Tuple[Command, List[str]]]:
        """Split a message into a registered command and its raw arguments.

        Returns:
            The command and its argument tokens, or None if `text` is not a
            known command.
        """
        if not text or not text.startswith(self.prefix):
            return None
        parts = text[len(self.prefix) :].split()
        if not parts:
            return None
        command = self.commands.get(parts[0])
        if command is None:
            logger.debug(f"Ignoring unknown command {parts[0]!r}")
            return None
        return command, parts[1:]

    def dispatch(self, event: Dict[str, Any]) -> bool:
        """Run the command carried by a Slack `message` event, if any.

        Bot messages and subtyped messages (edits, joins, ...) are never
        treated as commands.

        Returns:
            bool: True if a command was matched.
        """
        if event.get("bot_id") or event.get("subtype"):
            return False
        parsed = self.parse(event.get("text", ""))
        if parsed is None:
            return False
        command, tokens = parsed
        try:
            args = command.bind(tokens)
        except (ValueError, ValidationError) as err:
            logger.debug(f"Bad arguments for {command.name}: {err}")
            self.reply(event.get("channel", ""), command.usage(self.prefix))
            return True

        logger.info(f"Running command {command.name} for user={event.get('user')} channel={event.get('channel')}")
        command.handler(event, args)
        return True

    def _help(self, event: Dict[str, Any], args: NoArgs) -> None:
        lines = [f"`{c.usage(self.prefix)[len('Usage: '):]}`: {c.description}" for c in self.commands.values()]
        self.reply(event.get("channel", ""), "\n".join(lines))
