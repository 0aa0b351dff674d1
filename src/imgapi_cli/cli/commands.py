"""The IMGAPI subcommands shared by every binding."""

from __future__ import annotations

import argparse
import json
import mimetypes
import os
from contextlib import ExitStack
from pathlib import Path
from typing import IO, Any, Callable

from imgapi_cli.batch import run_batch
from imgapi_cli.cli.base import CLI
from imgapi_cli.cli.options import Option
from imgapi_cli.cli.registry import command
from imgapi_cli.errors import IntegrityError, UsageError
from imgapi_cli.manifest import (
    COMPRESSIONS,
    compression_from_path,
    file_name_for,
    parse_manifest,
    read_manifest_data,
    validate_uuid,
)
from imgapi_cli.steps import Step, run_steps
from imgapi_cli.tabulate import tabulate, validate_fields
from imgapi_cli.transfer import (
    TransferProgress,
    TransferSession,
    UploadStream,
    download_session,
    download_to,
)

JSON_OPTION = Option("json", "j", help="JSON output.")

LIST_VALID_FIELDS = (
    "uuid,owner,name,version,state,disabled,public,published,published_at,type,os,origin"
)
LIST_DEFAULT_COLUMNS = "uuid,name,version,os,state,published"
LIST_DEFAULT_SORT = "published_at,name"

CHANNEL_VALID_FIELDS = "name,default,description"
ICON_CONTENT_TYPES = ("image/png", "image/jpeg", "image/gif")


def _parse_filters(args: list[str]) -> dict[str, str]:
    filters = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or not key:
            raise UsageError(f'invalid filter: "{arg}" (expected FIELD=VALUE)')
        filters[key] = value
    return filters


def _parse_changes(args: list[str]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or not key:
            raise UsageError(f'invalid field update: "{arg}" (expected FIELD=VALUE)')
        try:
            changes[key] = json.loads(value)
        except ValueError:
            changes[key] = value
    return changes


def _one_uuid(args: list[str]) -> str:
    if not args:
        raise UsageError("missing UUID argument")
    if len(args) > 1:
        raise UsageError(f"too many arguments: {' '.join(args)}")
    return validate_uuid(args[0])


def _uuids(args: list[str]) -> list[str]:
    if not args:
        raise UsageError("missing UUID argument")
    return [validate_uuid(arg) for arg in args]


def _describe(image: dict) -> str:
    name = image.get("name")
    version = image.get("version")
    if name and version:
        return f"{image.get('uuid')} ({name}@{version})"
    return str(image.get("uuid"))


class ImgapiCLI(CLI):
    """Subcommands for IMGAPI image management."""

    def _print_json(self, data: Any) -> None:
        print(json.dumps(data, indent=2), file=self.stdout)

    def _print_table(self, items: list[dict], **kwargs: Any) -> None:
        for line in tabulate(items, **kwargs):
            print(line, file=self.stdout)

    def _progress(self, description: str, total: int | None) -> TransferProgress:
        return TransferProgress(
            description, total=total, stream=self.stderr, enabled=self.progress_enabled
        )

    def _binary_stream(self, stream: IO, what: str) -> IO[bytes]:
        binary = getattr(stream, "buffer", None)
        if binary is None:
            raise UsageError(f"{what} is not available as a binary stream")
        return binary

    def _report(self, opts: argparse.Namespace, verb: str, images: list[dict]) -> None:
        if getattr(opts, "json", None):
            self._print_json(images[0] if len(images) == 1 else images)
            return
        for image in images:
            print(f"{verb} image {_describe(image)}", file=self.stdout)

    def _download(self, response: Any, path: str | None, description: str) -> None:
        total = response.headers.get("Content-Length")
        try:
            with ExitStack() as stack:
                if path is None:
                    sink = self._binary_stream(self.stdout, "stdout")
                    progress = None
                else:
                    sink = stack.enter_context(open(path, "wb"))
                    progress = self._progress(
                        description, int(total) if total and total.isdigit() else None
                    )
                session = download_session(response, progress=progress)
                download_to(response, sink, session)
        except IntegrityError:
            if path is not None:
                Path(path).unlink(missing_ok=True)
            raise
        self.log.info("downloaded %d bytes (md5 %s)", session.size, session.digest)

    def _add_file(self, uuid: str, path: str, compression: str | None) -> dict:
        compression = compression or compression_from_path(path)
        if compression not in COMPRESSIONS:
            raise UsageError(
                f'invalid compression "{compression}": must be one of {", ".join(COMPRESSIONS)}'
            )
        with ExitStack() as stack:
            if path == "-":
                source = self._binary_stream(self.stdin, "stdin")
                size = None
            else:
                try:
                    source = stack.enter_context(open(path, "rb"))
                except OSError as exc:
                    raise UsageError(f"cannot open {path}: {exc}") from exc
                size = os.path.getsize(path)
            session = TransferSession(
                "sha1", progress=self._progress(f"Uploading {Path(path).name}", size)
            )
            body = UploadStream(source, session, size=size)
            try:
                image = self.client.add_image_file(uuid, body, compression=compression)
            except Exception as exc:
                session.finish(error=exc)
                raise
        image_file = parse_manifest(image).file
        session.finish(
            expected_digest=image_file.sha1 if image_file else None,
            expected_size=image_file.size if image_file else None,
        )
        self.log.info("uploaded %d bytes to %s (sha1 %s)", session.size, uuid, session.digest)
        return image

    def _add_icon(self, uuid: str, path: str) -> dict:
        content_type, _ = mimetypes.guess_type(path)
        if content_type not in ICON_CONTENT_TYPES:
            raise UsageError(f"icon must be a png, jpeg or gif file: {path}")
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise UsageError(f"cannot read {path}: {exc}") from exc
        return self.client.add_image_icon(uuid, data, content_type=content_type)

    def _create_steps(
        self,
        opts: argparse.Namespace,
        create: Callable[[], dict],
        state: dict[str, dict],
    ) -> list[Step]:
        def uuid() -> str:
            return state["image"]["uuid"]

        def remember(func: Callable[[], dict]) -> Callable[[], None]:
            return lambda: state.__setitem__("image", func())

        steps = [
            Step("create", remember(create), undo=lambda: self.client.delete_image(uuid())),
        ]
        if opts.file:
            steps.append(
                Step("add-file", remember(lambda: self._add_file(uuid(), opts.file, opts.compression)))
            )
        if opts.icon:
            steps.append(Step("add-icon", remember(lambda: self._add_icon(uuid(), opts.icon))))
        if opts.activate:
            steps.append(Step("activate", remember(lambda: self.client.activate_image(uuid()))))
        return steps

    def _check_create_opts(self, opts: argparse.Namespace) -> None:
        # Nothing here may touch the network.
        if opts.compression and not opts.file:
            raise UsageError("-c/--compression requires -f/--file")
        if opts.compression and opts.compression not in COMPRESSIONS:
            raise UsageError(
                f'invalid compression "{opts.compression}": must be one of {", ".join(COMPRESSIONS)}'
            )
        if opts.activate and not opts.file:
            raise UsageError("cannot activate an image without a file")
        if opts.file == "-" and opts.manifest == "-":
            raise UsageError("manifest and file cannot both be read from stdin")
        if opts.file and opts.file != "-" and not os.path.isfile(opts.file):
            raise UsageError(f"file not found: {opts.file}")
        if opts.icon and mimetypes.guess_type(opts.icon)[0] not in ICON_CONTENT_TYPES:
            raise UsageError(f"icon must be a png, jpeg or gif file: {opts.icon}")

    @command()
    def do_ping(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Ping the IMGAPI to see if it is up.

        Usage:
            $NAME ping
        """
        if args:
            raise UsageError(f"unexpected args: {' '.join(args)}")
        pong = self.client.ping()
        self.log.debug("ping: %s", pong)
        print("pong", file=self.stdout)

    @command(hidden=True)
    def do_state(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Dump some IMGAPI internal state (for debugging).

        Usage:
            $NAME state
        """
        if args:
            raise UsageError(f"unexpected args: {' '.join(args)}")
        self._print_json(self.client.admin_get_state())

    @command(
        aliases=["ls"],
        options=[
            JSON_OPTION,
            Option("skip-header", "H", help="Do not print the table header row."),
            Option("output", "o", type=str, metavar="FIELDS", help="Fields (columns) to output."),
            Option("sort", "s", type=str, metavar="FIELDS", help="Sort on the given fields."),
            Option("all", "a", help='List all images, not just "active" ones.'),
            Option("limit", type=int, metavar="N", help="Return at most N images."),
            Option("marker", type=str, metavar="UUID", help="Start listing after this image."),
        ],
    )
    def do_list(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """List images.

        Usage:
            $NAME list [OPTIONS] [FIELD=VALUE ...]

        Filters are passed to IMGAPI as-is, e.g. "os=smartos" or
        "state=disabled". "-a" is a shortcut for "state=all".

        Default output fields are "uuid,name,version,os,state,published",
        sorted on "published_at,name". Prefix a sort field with "-" to sort
        it descending (e.g. "--sort=-published_at").
        """
        filters = _parse_filters(args)
        columns = opts.output or LIST_DEFAULT_COLUMNS
        sort = opts.sort or LIST_DEFAULT_SORT
        if not opts.json:
            validate_fields(columns, LIST_VALID_FIELDS, sort)
        if opts.all:
            filters["state"] = "all"
        if opts.marker:
            validate_uuid(opts.marker)
        images = self.client.list_images(filters, limit=opts.limit, marker=opts.marker)
        if opts.json:
            self._print_json(images)
            return
        for image in images:
            if image.get("published_at"):
                image["published"] = image["published_at"][:10]
        self._print_table(
            images,
            columns=columns,
            sort=sort,
            valid_fields=LIST_VALID_FIELDS,
            skip_header=bool(opts.skip_header),
        )

    @command(aliases=["show", "info"])
    def do_get(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Get an image manifest.

        Usage:
            $NAME get UUID
        """
        uuid = _one_uuid(args)
        self._print_json(self.client.get_image(uuid))

    @command(
        aliases=["getfile"],
        options=[
            Option("output", "o", type=str, metavar="FILE", help="Write output to FILE."),
            Option(
                "output-name-version",
                "O",
                help="Write output to NAME-VERSION.EXT, EXT from the file's compression.",
            ),
        ],
    )
    def do_get_file(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Get an image file.

        Usage:
            $NAME get-file [OPTIONS] UUID

        Without -o or -O the file is written to stdout. The download is
        checked against the Content-MD5 and Content-Length of the response.
        """
        uuid = _one_uuid(args)
        if opts.output and opts.output_name_version:
            raise UsageError('cannot use both "-o FILE" and "-O"')
        path = opts.output
        if opts.output_name_version:
            path = file_name_for(parse_manifest(self.client.get_image(uuid)))
        response = self.client.get_image_file(uuid)
        self._download(response, path, f"Downloading {path or uuid}")
        if path:
            print(f"Saved image {uuid} file to {path}", file=self.stderr)

    @command(
        options=[Option("output", "o", type=str, metavar="FILE", help="Write output to FILE.")]
    )
    def do_get_icon(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Get an image icon.

        Usage:
            $NAME get-icon [-o FILE] UUID
        """
        uuid = _one_uuid(args)
        response = self.client.get_image_icon(uuid)
        self._download(response, opts.output, f"Downloading icon {uuid}")

    @command(
        options=[
            Option("manifest", "m", type=str, metavar="FILE", help='Manifest file ("-" for stdin).'),
            Option("file", "f", type=str, metavar="FILE", help="Image file to upload."),
            Option("compression", "c", type=str, metavar="COMPRESSION", help="File compression."),
            Option("icon", type=str, metavar="FILE", help="Icon to upload."),
            Option("activate", "A", help="Activate the image after adding its file."),
            JSON_OPTION,
        ]
    )
    def do_create(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Create a new image.

        Usage:
            $NAME create -m MANIFEST [-f FILE [-c COMPRESSION] [-A]] [--icon FILE]

        If a later step fails (uploading the file or icon, activating), the
        newly created image is deleted again.
        """
        if args:
            raise UsageError(f"unexpected args: {' '.join(args)}")
        if not opts.manifest:
            raise UsageError("missing -m MANIFEST")
        self._check_create_opts(opts)
        data = read_manifest_data(opts.manifest, stdin=self.stdin)
        state: dict[str, dict] = {}
        run_steps(self._create_steps(opts, lambda: self.client.create_image(data), state))
        self._report(opts, "Created", [state["image"]])

    @command(
        feature="import",
        options=[
            Option("manifest", "m", type=str, metavar="FILE", help='Manifest file ("-" for stdin).'),
            Option("source", "S", type=str, metavar="URL", help="Import UUID from this IMGAPI."),
            Option("file", "f", type=str, metavar="FILE", help="Image file to upload."),
            Option("compression", "c", type=str, metavar="COMPRESSION", help="File compression."),
            Option("icon", type=str, metavar="FILE", help="Icon to upload."),
            Option("activate", "A", help="Activate the image after adding its file."),
            JSON_OPTION,
        ],
    )
    def do_import(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Import an image, keeping its UUID (operator only).

        Usage:
            $NAME import -m MANIFEST [-f FILE [-c COMPRESSION] [-A]] [--icon FILE]
            $NAME import -S SOURCE-URL UUID
        """
        if opts.source:
            uuid = _one_uuid(args)
            if opts.manifest or opts.file:
                raise UsageError("-S cannot be combined with -m or -f")
            image = self.client.import_remote_image(uuid, opts.source)
            self._report(opts, "Imported", [image])
            return

        if args:
            raise UsageError(f"unexpected args: {' '.join(args)}")
        if not opts.manifest:
            raise UsageError("missing -m MANIFEST")
        self._check_create_opts(opts)
        data = read_manifest_data(opts.manifest, stdin=self.stdin)
        if not data.get("uuid"):
            raise UsageError("imported manifests must have a uuid")
        state: dict[str, dict] = {}
        run_steps(self._create_steps(opts, lambda: self.client.import_image(data), state))
        self._report(opts, "Imported", [state["image"]])

    @command(
        options=[
            Option("file", "f", type=str, metavar="FILE", help='Manifest file of changes ("-" for stdin).'),
            JSON_OPTION,
        ]
    )
    def do_update(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Update fields of an image manifest.

        Usage:
            $NAME update UUID [FIELD=VALUE ...] [-f FILE]

        Values are parsed as JSON where possible, so "public=true" sets a
        boolean while "description=foo" sets a string.
        """
        if not args:
            raise UsageError("missing UUID argument")
        uuid = validate_uuid(args[0])
        changes: dict[str, Any] = {}
        if opts.file:
            changes.update(read_manifest_data(opts.file, stdin=self.stdin))
        changes.update(_parse_changes(args[1:]))
        if not changes:
            raise UsageError("no changes given")
        image = self.client.update_image(uuid, changes)
        self._report(opts, "Updated", [image])

    @command(
        aliases=["addfile"],
        options=[
            Option("file", "f", type=str, metavar="FILE", help='Image file ("-" for stdin).'),
            Option("compression", "c", type=str, metavar="COMPRESSION", help="File compression."),
            JSON_OPTION,
        ],
    )
    def do_add_file(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Upload the file for an image.

        Usage:
            $NAME add-file -f FILE [-c COMPRESSION] UUID

        COMPRESSION is one of gzip, bzip2, xz or none and defaults to a guess
        from the file extension. The upload is verified against the sha1 and
        size that IMGAPI reports back.
        """
        uuid = _one_uuid(args)
        if not opts.file:
            raise UsageError("missing -f FILE")
        image = self._add_file(uuid, opts.file, opts.compression)
        self._report(opts, "Added file to", [image])

    @command(
        options=[
            Option("file", "f", type=str, metavar="FILE", help="Icon file (png, jpeg or gif)."),
            JSON_OPTION,
        ]
    )
    def do_add_icon(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Upload the icon for an image.

        Usage:
            $NAME add-icon -f FILE UUID
        """
        uuid = _one_uuid(args)
        if not opts.file:
            raise UsageError("missing -f FILE")
        self._report(opts, "Added icon to", [self._add_icon(uuid, opts.file)])

    @command(options=[JSON_OPTION])
    def do_delete_icon(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Remove the icon of an image.

        Usage:
            $NAME delete-icon UUID
        """
        uuid = _one_uuid(args)
        self._report(opts, "Deleted icon from", [self.client.delete_image_icon(uuid)])

    @command(aliases=["rm"])
    def do_delete(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Delete one or more images.

        Usage:
            $NAME delete UUID [UUID ...]
        """
        deleted: list[str] = []
        try:
            run_batch(
                self.client.delete_image,
                _uuids(args),
                on_result=lambda uuid, _result: deleted.append(uuid),
            )
        finally:
            for uuid in deleted:
                print(f"Deleted image {uuid}", file=self.stdout)

    def _batch_action(
        self, opts: argparse.Namespace, args: list[str], action: Callable[[str], dict], verb: str
    ) -> None:
        # Targets that succeeded are reported even when another one failed.
        images: list[dict] = []
        try:
            run_batch(action, _uuids(args), on_result=lambda _uuid, image: images.append(image))
        finally:
            if images:
                self._report(opts, verb, images)

    @command(options=[JSON_OPTION])
    def do_activate(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Activate one or more images.

        Usage:
            $NAME activate UUID [UUID ...]
        """
        self._batch_action(opts, args, self.client.activate_image, "Activated")

    @command(options=[JSON_OPTION])
    def do_enable(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Enable one or more images.

        Usage:
            $NAME enable UUID [UUID ...]
        """
        self._batch_action(opts, args, self.client.enable_image, "Enabled")

    @command(options=[JSON_OPTION])
    def do_disable(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Disable one or more images.

        Usage:
            $NAME disable UUID [UUID ...]
        """
        self._batch_action(opts, args, self.client.disable_image, "Disabled")

    def _acl_args(self, args: list[str]) -> tuple[str, list[str]]:
        if len(args) < 2:
            raise UsageError("usage: UUID ACCOUNT [ACCOUNT ...]")
        return validate_uuid(args[0]), [validate_uuid(arg) for arg in args[1:]]

    @command(options=[JSON_OPTION])
    def do_add_acl(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Add account UUIDs to the ACL of a private image.

        Usage:
            $NAME add-acl UUID ACCOUNT [ACCOUNT ...]
        """
        uuid, accounts = self._acl_args(args)
        self._report(opts, "Updated ACL of", [self.client.add_image_acl(uuid, accounts)])

    @command(options=[JSON_OPTION])
    def do_remove_acl(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Remove account UUIDs from the ACL of a private image.

        Usage:
            $NAME remove-acl UUID ACCOUNT [ACCOUNT ...]
        """
        uuid, accounts = self._acl_args(args)
        self._report(opts, "Updated ACL of", [self.client.remove_image_acl(uuid, accounts)])

    @command(
        feature="export",
        options=[
            Option("manta-path", "m", type=str, metavar="PATH", help="Manta directory or file path."),
        ],
    )
    def do_export(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Export an image manifest and file to Manta.

        Usage:
            $NAME export -m PATH UUID
        """
        uuid = _one_uuid(args)
        if not opts.manta_path:
            raise UsageError("missing -m PATH")
        self._print_json(self.client.export_image(uuid, opts.manta_path))

    @command(
        feature="channels",
        options=[
            JSON_OPTION,
            Option("skip-header", "H", help="Do not print the table header row."),
        ],
    )
    def do_channels(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """List image channels.

        Usage:
            $NAME channels [-j] [-H]
        """
        if args:
            raise UsageError(f"unexpected args: {' '.join(args)}")
        channels = self.client.list_channels()
        if opts.json:
            self._print_json(channels)
            return
        self._print_table(
            channels,
            columns=CHANNEL_VALID_FIELDS,
            valid_fields=CHANNEL_VALID_FIELDS,
            skip_header=bool(opts.skip_header),
        )

    @command(feature="channels", options=[JSON_OPTION])
    def do_channel_add(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Add one or more images to a channel.

        Usage:
            $NAME channel-add CHANNEL UUID [UUID ...]
        """
        if len(args) < 2:
            raise UsageError("usage: channel-add CHANNEL UUID [UUID ...]")
        channel = args[0]
        self._batch_action(
            opts,
            args[1:],
            lambda uuid: self.client.channel_add_image(uuid, channel),
            f'Added to channel "{channel}"',
        )

    @command(feature="admin", hidden=True)
    def do_change_stor(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Move an image file to another storage backend (operator only).

        Usage:
            $NAME change-stor UUID STOR
        """
        if len(args) != 2:
            raise UsageError("usage: change-stor UUID STOR")
        uuid = validate_uuid(args[0])
        self._print_json(self.client.admin_change_image_stor(uuid, args[1]))

    @command(feature="admin", hidden=True)
    def do_reload_auth_keys(self, subcmd: str, opts: argparse.Namespace, args: list[str]) -> None:
        """Ask IMGAPI to reload its auth keys (operator only).

        Usage:
            $NAME reload-auth-keys
        """
        if args:
            raise UsageError(f"unexpected args: {' '.join(args)}")
        self.client.admin_reload_auth_keys()
        print("Reloaded auth keys", file=self.stdout)
