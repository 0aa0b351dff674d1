"""Option schemas and whole-argv parsing.

Subcommand options are only known once the subcommand is, so the CLI parses
argv twice: once with the global schema to find the subcommand, then again
with the global schema merged with that command's schema. Parsing the whole
argv the second time also lets boolean command options appear before the
subcommand name, e.g. ``joyent-imgadm -j list``.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Mapping, Sequence

from imgapi_cli.errors import UnknownOptionError, UsageError


@dataclass(frozen=True)
class Option:
    name: str
    short: str | None = None
    type: Callable = bool
    multiple: bool = False
    help: str = ""
    metavar: str | None = None

    @property
    def dest(self) -> str:
        return self.name.replace("-", "_")

    @property
    def flags(self) -> list[str]:
        flags = [f"--{self.name}"]
        if self.short:
            flags.insert(0, f"-{self.short}")
        return flags


OptionSchema = Mapping[str, Option]


def schema(options: Iterable[Option]) -> dict[str, Option]:
    return {opt.name: opt for opt in options}


def merge_schemas(base: OptionSchema, override: OptionSchema | None) -> dict[str, Option]:
    """Layer ``override`` over ``base``; override definitions win.

    A short letter taken by an override option is dropped from whichever
    base option held it.
    """
    if not override:
        return dict(base)
    taken = {opt.short for opt in override.values() if opt.short}
    merged = {}
    for name, opt in base.items():
        if name in override:
            continue
        if opt.short in taken:
            opt = replace(opt, short=None)
        merged[name] = opt
    merged.update(override)
    return merged


@dataclass
class ParsedOptions:
    opts: argparse.Namespace
    args: list[str]
    unknown: list[str]


class _ArgvParser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise UsageError(message)


def _build_parser(options: OptionSchema) -> _ArgvParser:
    parser = _ArgvParser(add_help=False, allow_abbrev=False, prog="")
    for opt in options.values():
        kwargs: dict = {"dest": opt.dest, "default": None, "help": opt.help}
        if opt.type is bool:
            kwargs["action"] = "append_const" if opt.multiple else "store_true"
            if opt.multiple:
                kwargs["const"] = True
        else:
            kwargs["action"] = "append" if opt.multiple else "store"
            kwargs["type"] = opt.type
            if opt.metavar:
                kwargs["metavar"] = opt.metavar
        parser.add_argument(*opt.flags, **kwargs)
    return parser


def _is_flag(token: str) -> bool:
    return len(token) > 1 and token.startswith("-") and not token[1:].replace(".", "").isdigit()


def _expand_short_groups(options: OptionSchema, argv: Sequence[str]) -> list[str]:
    """Split ``-abc`` into ``-a -b -c`` so each letter is judged on its own.

    Expansion stops at the first letter whose option takes a value; the rest
    of the token stays attached as that value (``-sname``). Letters the
    schema does not declare become separate unknown flags.
    """
    shorts = {opt.short: opt for opt in options.values() if opt.short}
    expanded: list[str] = []
    for token in argv:
        if len(token) <= 2 or token.startswith("--") or not _is_flag(token):
            expanded.append(token)
            continue
        letters = token[1:]
        for index, letter in enumerate(letters):
            opt = shorts.get(letter)
            if opt is None and not letter.isalnum():
                if index:
                    expanded[-1] += letters[index:]
                else:
                    expanded.append(token)
                break
            if opt is not None and opt.type is not bool:
                expanded.append(f"-{letters[index:]}")
                break
            expanded.append(f"-{letter}")
    return expanded


def parse_argv(options: OptionSchema, argv: Sequence[str], *, strict: bool = True) -> ParsedOptions:
    """Parse ``argv`` against ``options``.

    Positionals keep their order and may be interleaved with options. Tokens
    after ``--`` are always positional. In strict mode all unrecognised
    flags are reported together in one ``UnknownOptionError``.
    """
    argv = list(argv)
    trailing: list[str] = []
    if "--" in argv:
        split = argv.index("--")
        argv, trailing = argv[:split], argv[split + 1 :]

    parser = _build_parser(options)
    namespace, extras = parser.parse_known_args(_expand_short_groups(options, argv))
    unknown = [token for token in extras if _is_flag(token)]
    if strict and unknown:
        raise UnknownOptionError([token.split("=", 1)[0] for token in unknown])
    args = [token for token in extras if not _is_flag(token)] + trailing
    return ParsedOptions(opts=namespace, args=args, unknown=unknown)


def format_option_help(options: OptionSchema, *, indent: str = "    ") -> list[str]:
    lines = []
    for opt in options.values():
        if not opt.help:
            continue
        flags = ", ".join(opt.flags)
        if opt.type is not bool:
            flags += f" {opt.metavar or opt.dest.upper()}"
        if len(flags) > 20:
            lines.append(f"{indent}{flags}")
            lines.append(f"{indent}{'':20}  {opt.help}")
        else:
            lines.append(f"{indent}{flags:20}  {opt.help}")
    return lines
