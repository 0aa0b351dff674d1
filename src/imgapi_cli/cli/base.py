"""CLI mainline and subcommand dispatch shared by every imgapi binding."""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import re
import sys
import traceback
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import IO, Mapping, Sequence

from imgapi_cli.cli.auth import AUTH_MODES, HttpSignatureAuth, basic_auth, split_basic_user
from imgapi_cli.cli.config import CLIConfig, ConfigError, load_cli_config
from imgapi_cli.cli.identity import IdentityError, find_identity
from imgapi_cli.cli.options import (
    Option,
    format_option_help,
    merge_schemas,
    parse_argv,
    schema,
)
from imgapi_cli.cli.registry import build_command_table, command
from imgapi_cli.client import ImgapiClient
from imgapi_cli.errors import (
    ImgapiCliError,
    NoHelpError,
    UnknownCommandError,
    UsageError,
    classify_error,
)

LOGGER_NAME = "imgapi_cli"
EXIT_SUCCESS = 0

_SENSITIVE_FIELDS = ("password", "secret", "token", "authorization", "signature")


def _cli_version() -> str:
    try:
        return pkg_version("imgapi-cli")
    except PackageNotFoundError:
        return "0.0.0+local"


def _sanitize_error_text(value: str) -> str:
    redacted = value
    for field in _SENSITIVE_FIELDS:
        redacted = re.sub(
            rf"(?i)({field}\s*[=:]\s*)([^,\s]+)",
            r"\1[REDACTED]",
            redacted,
        )
    redacted = re.sub(r"(?i)(https?://[^:/\s]+:)([^@/\s]+)(@)", r"\1[REDACTED]\3", redacted)
    return redacted


@dataclass(frozen=True)
class Deployment:
    """One concrete binding of the CLI to an IMGAPI deployment."""

    name: str
    url: str | None = None
    auth: str = "none"
    description: str | None = None
    envopts: tuple[tuple[str, str], ...] = ()
    features: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.auth not in AUTH_MODES:
            raise ValueError(f"auth must be one of: {', '.join(AUTH_MODES)}")


class CLI:
    """Base class: global options, help and dispatch to ``do_*`` handlers."""

    def __init__(
        self,
        deployment: Deployment,
        *,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
        stdin: IO[str] | None = None,
        environ: Mapping[str, str] | None = None,
        client: ImgapiClient | None = None,
    ) -> None:
        self.deployment = deployment
        self.name = deployment.name
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stderr = stderr if stderr is not None else sys.stderr
        self.stdin = stdin if stdin is not None else sys.stdin
        self.environ = environ if environ is not None else os.environ
        self.log = logging.getLogger(LOGGER_NAME)
        self.global_options = schema(self._global_options())
        self.table = build_command_table(self, features=deployment.features)
        self.config = CLIConfig()
        self.opts = argparse.Namespace()
        self._client = client

    def _global_options(self) -> list[Option]:
        options = [
            Option("help", "h", help="Show this help message and exit."),
            Option("version", help="Show version and exit."),
            Option("debug", "d", multiple=True, help="Debug logging. Multiple times for more."),
            Option("insecure", "k", help="Do not validate the server TLS certificate."),
            Option("url", type=str, metavar="URL", help="IMGAPI base URL."),
            Option("config", type=str, metavar="PATH", help="Path to a TOML config file."),
            Option("no-progress", help="Do not draw progress bars."),
        ]
        if self.deployment.auth == "basic":
            options.append(
                Option(
                    "user",
                    "u",
                    type=str,
                    metavar="USER[:PASSWORD]",
                    help="Basic auth user and, optionally, password.",
                )
            )
        elif self.deployment.auth == "signature":
            options.append(Option("user", "u", type=str, metavar="USER", help="Username."))
            options.append(
                Option(
                    "identity",
                    "i",
                    type=str,
                    multiple=True,
                    metavar="FILE",
                    help="Path to an ssh private key.",
                )
            )
        if "channels" in self.deployment.features:
            options.append(
                Option("channel", "C", type=str, metavar="NAME", help="Image channel to use.")
            )
        return options

    def main(self, argv: Sequence[str]) -> int:
        argv = list(argv)
        verbose = False
        handler = None
        try:
            parsed = parse_argv(self.global_options, argv, strict=False)
            opts = parsed.opts
            verbose = bool(opts.debug)
            if opts.version:
                print(f"{self.name} {_cli_version()}", file=self.stdout)
                return EXIT_SUCCESS
            if opts.help and parsed.args:
                self.do_help("help", opts, parsed.args[:1])
                return EXIT_SUCCESS
            if opts.help or not parsed.args:
                self.print_help()
                return EXIT_SUCCESS

            handler = self._setup_logging(len(opts.debug or []))
            self.log.debug("parsed argv: %s", argv)
            self.dispatch(parsed.args[0], argv)
            return EXIT_SUCCESS
        except Exception as exc:
            err = classify_error(exc)
            self._print_error(err, verbose=verbose)
            return err.exit_status
        finally:
            if handler is not None:
                self.log.removeHandler(handler)
                logging.getLogger("urllib3").removeHandler(handler)

    def _setup_logging(self, verbosity: int) -> logging.Handler:
        """``-d`` info, ``-dd`` debug, ``-ddd`` debug with source locations."""
        level = logging.WARNING
        fmt = "%(name)s: %(levelname)s: %(message)s"
        if verbosity == 1:
            level = logging.INFO
        elif verbosity >= 2:
            level = logging.DEBUG
        if verbosity >= 3:
            fmt = "%(name)s: %(levelname)s: %(pathname)s:%(lineno)d: %(message)s"
        handler = logging.StreamHandler(self.stderr)
        handler.setFormatter(logging.Formatter(fmt))
        self.log.addHandler(handler)
        if verbosity >= 3:
            urllib3_log = logging.getLogger("urllib3")
            urllib3_log.setLevel(logging.DEBUG)
            urllib3_log.addHandler(handler)
        self.log.setLevel(level)
        return handler

    def _print_error(self, err: ImgapiCliError, *, verbose: bool) -> None:
        message = _sanitize_error_text(err.message)
        print(f"{self.name}: {err.code}: {message}", file=self.stderr)
        if verbose:
            trace = "".join(traceback.format_exception(type(err), err, err.__traceback__))
            print(_sanitize_error_text(trace.rstrip()), file=self.stderr)

    def _apply_envopts(self, opts: argparse.Namespace, options: Mapping[str, Option]) -> None:
        """Fill options not given on argv from the deployment's env vars."""
        for envname, optname in self.deployment.envopts:
            opt = options.get(optname)
            value = self.environ.get(envname)
            if opt is None or not value or getattr(opts, opt.dest, None) is not None:
                continue
            self.log.debug("using $%s for --%s", envname, optname)
            if opt.type is bool:
                setattr(opts, opt.dest, value.strip().lower() in {"1", "true", "yes", "on"})
            elif opt.multiple:
                setattr(opts, opt.dest, [opt.type(value)])
            else:
                setattr(opts, opt.dest, opt.type(value))

    def dispatch(self, subcmd: str, argv: Sequence[str]) -> None:
        cmd = self.table.resolve(subcmd)
        if cmd is None:
            raise UnknownCommandError(subcmd)

        options = merge_schemas(self.global_options, cmd.options)
        parsed = parse_argv(options, argv)
        self._apply_envopts(parsed.opts, options)
        args = list(parsed.args)
        assert args and args[0] == subcmd, f"expected {subcmd!r} as first argument, got {args!r}"
        args.pop(0)

        self.opts = parsed.opts
        try:
            self.config = load_cli_config(
                getattr(parsed.opts, "config", None), section=self.name
            )
        except ConfigError as exc:
            raise UsageError(f"config error: {exc}") from exc
        self.log.debug("dispatch %s -> %s args=%s", subcmd, cmd.name, args)
        cmd.handler(subcmd, parsed.opts, args)

    @property
    def progress_enabled(self) -> bool:
        return not getattr(self.opts, "no_progress", None) and self.config.progress

    @property
    def client(self) -> ImgapiClient:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> ImgapiClient:
        opts = self.opts
        url = getattr(opts, "url", None) or self.config.url or self.deployment.url
        if not url:
            raise UsageError(f"no IMGAPI URL configured for {self.name}: use --url")
        insecure = bool(getattr(opts, "insecure", None)) or self.config.insecure

        auth = None
        user = getattr(opts, "user", None) or self.config.user
        if self.deployment.auth == "basic" and user:
            user, password = split_basic_user(user)
            if password is None:
                password = self._prompt_password(f'Enter IMGAPI password for user "{user}": ')
            self.log.info("basic auth as %s", user)
            auth = basic_auth(user, password)
        elif self.deployment.auth == "signature":
            identities = getattr(opts, "identity", None) or list(self.config.identities)
            try:
                identity = find_identity(identities)
            except IdentityError as exc:
                raise UsageError(str(exc)) from exc
            if user and identity is not None:
                self.log.info("signature auth as %s with %s", user, identity.path)
                auth = HttpSignatureAuth(user, identity)
            else:
                self.log.info("no signature auth (user=%s, identity=%s)", user, identity)

        return ImgapiClient(
            base_url=url,
            auth=auth,
            channel=getattr(opts, "channel", None),
            insecure=insecure,
            user_agent=f"{self.name}/{_cli_version()}",
        )

    def _prompt_password(self, prompt: str) -> str:
        try:
            return getpass.getpass(prompt, stream=self.stderr)
        except (EOFError, KeyboardInterrupt) as exc:
            raise UsageError("password prompt cancelled") from exc

    def print_help(self) -> None:
        lines = []
        if self.deployment.description:
            lines.append(self.deployment.description)
            lines.append("")
        lines += [
            "Usage:",
            f"    {self.name} [OPTIONS] COMMAND [ARGS...]",
            f"    {self.name} help COMMAND",
            "",
            "Options:",
        ]
        lines += format_option_help(self.global_options)

        if self.deployment.envopts:
            lines += ["", "Environment:"]
            for envname, optname in self.deployment.envopts:
                lines.append(f"    {envname:23}  Fallback for --{optname}")

        lines += ["", "Commands:"]
        for cmd in self.table.visible():
            names = cmd.name
            if cmd.aliases:
                names += f" ({', '.join(cmd.aliases)})"
            summary = cmd.summary.replace("$NAME", self.name)
            lines.append(f"    {names:18}  {summary}".rstrip())
        print("\n".join(lines), file=self.stdout)

    def print_command_help(self, name: str) -> None:
        cmd = self.table.commands[name]
        if not cmd.description:
            raise NoHelpError(name)
        text = cmd.description.replace("$NAME", self.name).rstrip()
        option_lines = format_option_help(cmd.options)
        if option_lines:
            text += "\n\nOptions:\n" + "\n".join(option_lines)
        print(text, file=self.stdout)

    @command(aliases=["?"])
    def do_help(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Give detailed help on a specific sub-command.

        Usage:
            $NAME help [COMMAND]
        """
        if not args:
            self.print_help()
            return
        if len(args) > 1:
            raise UsageError(f"too many arguments: {' '.join(args)}")
        alias = args[0]
        cmd = self.table.resolve(alias)
        if cmd is None:
            raise UnknownCommandError(alias)
        hook = self.table.help_hooks.get(cmd.name)
        if hook is not None:
            hook(alias)
            return
        if not cmd.description:
            raise NoHelpError(alias)
        self.print_command_help(cmd.name)

    def help_help(self, subcmd: str) -> None:
        self.print_help()
