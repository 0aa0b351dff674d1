"""Subcommand table.

Handlers are ``do_<name>`` methods on a CLI class, described with the
``@command`` decorator. The table is built once per CLI instance and never
changes afterwards; commands gated on a feature that the deployment does not
enable are simply left out.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from imgapi_cli.cli.options import Option, OptionSchema, schema

HANDLER_PREFIX = "do_"
HELP_PREFIX = "help_"


@dataclass(frozen=True)
class CommandInfo:
    aliases: tuple[str, ...] = ()
    options: OptionSchema = field(default_factory=dict)
    hidden: bool = False
    feature: str | None = None


def command(
    *,
    aliases: Iterable[str] = (),
    options: Iterable[Option] = (),
    hidden: bool = False,
    feature: str | None = None,
) -> Callable:
    """Attach subcommand metadata to a ``do_<name>`` handler."""

    def decorator(func: Callable) -> Callable:
        func.command_info = CommandInfo(
            aliases=tuple(aliases),
            options=MappingProxyType(schema(options)),
            hidden=hidden,
            feature=feature,
        )
        return func

    return decorator


@dataclass(frozen=True)
class Command:
    name: str
    handler: Callable[..., Any]
    aliases: tuple[str, ...] = ()
    options: OptionSchema = field(default_factory=dict)
    description: str | None = None
    hidden: bool = False

    @property
    def summary(self) -> str:
        return self.description.split("\n", 1)[0] if self.description else ""


@dataclass(frozen=True)
class CommandTable:
    commands: Mapping[str, Command]
    aliases: Mapping[str, str]
    help_hooks: Mapping[str, Callable[..., Any]]

    def resolve(self, name: str) -> Command | None:
        canonical = self.aliases.get(name)
        return self.commands[canonical] if canonical is not None else None

    def visible(self) -> list[Command]:
        return [cmd for cmd in self.commands.values() if not cmd.hidden]


def _command_name(attr: str, prefix: str) -> str:
    return attr[len(prefix) :].replace("_", "-")


def build_command_table(cli: object, *, features: Iterable[str] = ()) -> CommandTable:
    """Scan ``cli`` for ``do_*``/``help_*`` methods and build its table."""
    enabled = frozenset(features)
    commands: dict[str, Command] = {}
    aliases: dict[str, str] = {}
    help_hooks: dict[str, Callable[..., Any]] = {}

    for attr in sorted(dir(type(cli))):
        if not attr.startswith(HANDLER_PREFIX):
            continue
        func = getattr(type(cli), attr)
        if not callable(func):
            continue
        info = getattr(func, "command_info", None) or CommandInfo()
        if info.feature is not None and info.feature not in enabled:
            continue
        name = _command_name(attr, HANDLER_PREFIX)
        doc = inspect.getdoc(func)
        commands[name] = Command(
            name=name,
            handler=getattr(cli, attr),
            aliases=info.aliases,
            options=info.options,
            description=doc,
            hidden=info.hidden,
        )

    for name, cmd in commands.items():
        for invocation in (name, *cmd.aliases):
            existing = aliases.get(invocation)
            if existing is not None and existing != name:
                raise ValueError(
                    f'"{invocation}" is claimed by both "{existing}" and "{name}"'
                )
            aliases[invocation] = name

    for attr in sorted(dir(type(cli))):
        if not attr.startswith(HELP_PREFIX):
            continue
        name = _command_name(attr, HELP_PREFIX)
        if name in commands:
            help_hooks[name] = getattr(cli, attr)

    return CommandTable(
        commands=MappingProxyType(commands),
        aliases=MappingProxyType(aliases),
        help_hooks=MappingProxyType(help_hooks),
    )
