from __future__ import annotations

import base64
import hashlib
import io
import json

import pytest

from imgapi_cli.cli.commands import ImgapiCLI
from imgapi_cli.cli.deployments import JOYENT_IMGADM, SDC_IMGADM, UPDATES_IMGADM
from imgapi_cli.client import ImgapiClient
from imgapi_cli.errors import ImgapiRequestError

UUID_A = "01b2c898-945f-11e1-a523-af1afbe22822"
UUID_B = "4ea36cb4-1ba8-11e2-8d3b-2f8e3e4de4c6"
ACCOUNT = "930896af-bf8c-48d4-885c-6573a94b1853"

IMAGES = [
    {
        "uuid": UUID_A,
        "name": "foo",
        "version": "1.0.0",
        "os": "smartos",
        "state": "active",
        "published_at": "2013-01-02T10:00:00Z",
    },
    {
        "uuid": UUID_B,
        "name": "barbaz",
        "version": "2.0.0",
        "os": "linux",
        "state": "active",
        "published_at": "2013-01-01T10:00:00Z",
    },
]


def _not_found(uuid: str) -> ImgapiRequestError:
    return ImgapiRequestError(
        f"image {uuid} not found",
        status_code=404,
        code="ResourceNotFound",
        body={"code": "ResourceNotFound", "message": f"image {uuid} not found"},
    )


class FakeResponse:
    def __init__(self, payload: bytes, *, md5: bytes | None = None) -> None:
        digest = hashlib.md5(payload if md5 is None else md5).digest()
        self.headers = {
            "Content-MD5": base64.b64encode(digest).decode("ascii"),
            "Content-Length": str(len(payload)),
        }
        self._payload = payload
        self.closed = False

    def iter_content(self, chunk_size=None):  # noqa: ANN001
        yield self._payload

    def close(self) -> None:
        self.closed = True


class FakeClient:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.missing: set[str] = set()
        self.file_sha1: str | None = None
        self.fail_upload = False
        self.download = FakeResponse(b"image bits")

    def _image(self, uuid: str, **extra) -> dict:
        if uuid in self.missing:
            raise _not_found(uuid)
        for image in IMAGES:
            if image["uuid"] == uuid:
                return {**image, **extra}
        return {"uuid": uuid, "name": "new", "version": "1.0", **extra}

    def ping(self) -> dict:
        self.calls.append(("ping",))
        return {"ping": "pong"}

    def admin_get_state(self) -> dict:
        self.calls.append(("state",))
        return {"cache": {}}

    def list_images(self, filters=None, *, limit=None, marker=None):  # noqa: ANN001
        self.calls.append(("list_images", dict(filters or {}), limit, marker))
        return [dict(image) for image in IMAGES]

    def get_image(self, uuid: str) -> dict:
        self.calls.append(("get_image", uuid))
        return self._image(uuid, files=[{"compression": "gzip"}])

    def get_image_file(self, uuid: str) -> FakeResponse:
        self.calls.append(("get_image_file", uuid))
        return self.download

    def create_image(self, manifest: dict) -> dict:
        self.calls.append(("create_image", manifest))
        return {"uuid": UUID_A, "state": "unactivated", **manifest}

    def import_image(self, manifest: dict) -> dict:
        self.calls.append(("import_image", manifest))
        return {"state": "unactivated", **manifest}

    def import_remote_image(self, uuid: str, source: str) -> dict:
        self.calls.append(("import_remote_image", uuid, source))
        return self._image(uuid)

    def update_image(self, uuid: str, changes: dict) -> dict:
        self.calls.append(("update_image", uuid, changes))
        return self._image(uuid, **changes)

    def add_image_file(self, uuid, body, *, compression):  # noqa: ANN001
        self.calls.append(("add_image_file", uuid, compression))
        data = b"".join(body)
        if self.fail_upload:
            raise ImgapiRequestError(
                "upload failed",
                status_code=500,
                code="UploadError",
                body={"code": "UploadError", "message": "upload failed"},
            )
        sha1 = self.file_sha1 or hashlib.sha1(data).hexdigest()
        return self._image(
            uuid, files=[{"sha1": sha1, "size": len(data), "compression": compression}]
        )

    def delete_image(self, uuid: str) -> None:
        self.calls.append(("delete_image", uuid))
        if uuid in self.missing:
            raise _not_found(uuid)

    def activate_image(self, uuid: str) -> dict:
        self.calls.append(("activate_image", uuid))
        return self._image(uuid, state="active")

    def disable_image(self, uuid: str) -> dict:
        self.calls.append(("disable_image", uuid))
        return self._image(uuid, disabled=True)

    def add_image_acl(self, uuid: str, accounts: list) -> dict:
        self.calls.append(("add_image_acl", uuid, list(accounts)))
        return self._image(uuid, acl=list(accounts))

    def list_channels(self) -> list:
        self.calls.append(("list_channels",))
        return [
            {"name": "dev", "default": True, "description": "all builds"},
            {"name": "release", "description": "release builds"},
        ]

    def channel_add_image(self, uuid: str, channel: str) -> dict:
        self.calls.append(("channel_add_image", uuid, channel))
        return self._image(uuid, channels=[channel])

    def add_image_icon(self, uuid: str, body: bytes, *, content_type: str) -> dict:
        self.calls.append(("add_image_icon", uuid, content_type, body))
        return self._image(uuid, icon=True)

    def delete_image_icon(self, uuid: str) -> dict:
        self.calls.append(("delete_image_icon", uuid))
        return self._image(uuid, icon=False)

    def export_image(self, uuid: str, manta_path: str) -> dict:
        self.calls.append(("export_image", uuid, manta_path))
        return {
            "manta_url": "https://us-east.manta.joyent.com",
            "image_path": f"{manta_path}/foo-1.0.0.zfs.gz",
            "manifest_path": f"{manta_path}/foo-1.0.0.imgmanifest",
        }

    def admin_change_image_stor(self, uuid: str, stor: str) -> dict:
        self.calls.append(("admin_change_image_stor", uuid, stor))
        return self._image(uuid, files=[{"stor": stor}])

    def admin_reload_auth_keys(self) -> None:
        self.calls.append(("admin_reload_auth_keys",))


def _run(argv, *, deployment=SDC_IMGADM, client=None, environ=None, stdin=None):  # noqa: ANN001
    out = io.StringIO()
    err = io.StringIO()
    cli = ImgapiCLI(
        deployment,
        stdout=out,
        stderr=err,
        stdin=stdin,
        environ=environ or {},
        client=client if client is not None else FakeClient(),
    )
    rc = cli.main(argv)
    return rc, out.getvalue(), err.getvalue(), cli


def test_version() -> None:
    rc, out, err, _ = _run(["--version"])
    assert rc == 0
    assert out.startswith("sdc-imgadm ")
    assert err == ""


def test_no_args_prints_help() -> None:
    rc, out, _, _ = _run([])
    assert rc == 0
    assert "Usage:" in out
    assert "list (ls)" in out
    assert "state" not in out.split("Commands:")[1]


def test_help_for_command() -> None:
    rc, out, _, _ = _run(["help", "ls"])
    assert rc == 0
    assert out.startswith("List images.")
    assert "sdc-imgadm list [OPTIONS]" in out
    assert "-j, --json" in out

    rc, out_h, _, _ = _run(["list", "-h"])
    assert rc == 0
    assert out_h == out


def test_help_for_unknown_command() -> None:
    rc, out, err, _ = _run(["help", "bogus"])
    assert rc == 1
    assert out == ""
    assert err == 'sdc-imgadm: UnknownCommand: unknown command: "bogus"\n'


def test_unknown_command() -> None:
    rc, _, err, _ = _run(["bogus"])
    assert rc == 1
    assert err == 'sdc-imgadm: UnknownCommand: unknown command: "bogus"\n'


def test_unknown_option_never_reaches_handler() -> None:
    client = FakeClient()
    rc, out, err, _ = _run(["list", "--bogus", "-Z"], client=client)
    assert rc == 1
    assert out == ""
    assert err == 'sdc-imgadm: UnknownOption: unknown options: "--bogus", "-Z"\n'
    assert client.calls == []


def test_unknown_letter_in_flag_group() -> None:
    client = FakeClient()
    rc, out, err, _ = _run(["list", "-jZ"], client=client)
    assert rc == 1
    assert out == ""
    assert err == 'sdc-imgadm: UnknownOption: unknown option: "-Z"\n'
    assert client.calls == []


@pytest.mark.parametrize("argv", [["list", "-dj"], ["-dj", "list"]])
def test_flag_group_mixing_global_and_command_flags(argv) -> None:  # noqa: ANN001
    rc, out, _, cli = _run(argv)
    assert rc == 0
    assert cli.opts.debug == [True]
    assert [image["uuid"] for image in json.loads(out)] == [UUID_A, UUID_B]


def test_ping() -> None:
    rc, out, _, _ = _run(["ping"])
    assert (rc, out) == (0, "pong\n")


def test_hidden_state_command_still_runs() -> None:
    rc, out, _, _ = _run(["state"])
    assert rc == 0
    assert json.loads(out) == {"cache": {}}


def test_list_table_default_columns_and_sort() -> None:
    rc, out, _, _ = _run(["list"])
    lines = out.splitlines()
    assert rc == 0
    assert lines[0].split() == ["UUID", "NAME", "VERSION", "OS", "STATE", "PUBLISHED"]
    assert lines[1].split() == [UUID_B, "barbaz", "2.0.0", "linux", "active", "2013-01-01"]
    assert lines[2].split()[0] == UUID_A


def test_alias_runs_same_handler() -> None:
    assert _run(["ls", "-H", "-o", "name"])[1] == _run(["list", "-H", "-o", "name"])[1]


def test_list_sort_and_output_options() -> None:
    rc, out, _, _ = _run(["list", "-H", "-o", "name", "--sort=-name"])
    assert rc == 0
    assert out.splitlines() == ["foo", "barbaz"]


def test_list_json_option_before_subcommand() -> None:
    rc, out, _, _ = _run(["-j", "list"])
    assert rc == 0
    assert [image["uuid"] for image in json.loads(out)] == [UUID_A, UUID_B]


def test_list_filters() -> None:
    client = FakeClient()
    rc, _, _, _ = _run(["list", "os=smartos", "-a", "--limit", "5"], client=client)
    assert rc == 0
    assert client.calls == [("list_images", {"os": "smartos", "state": "all"}, 5, None)]


def test_list_invalid_field_fails_before_request() -> None:
    client = FakeClient()
    rc, out, err, _ = _run(["list", "-o", "name,bogus"], client=client)
    assert rc == 1
    assert out == ""
    assert err == 'sdc-imgadm: InvalidField: invalid output field: "bogus"\n'
    assert client.calls == []


def test_get_prints_manifest() -> None:
    rc, out, _, _ = _run(["show", UUID_A])
    assert rc == 0
    assert json.loads(out)["name"] == "foo"


def test_get_invalid_uuid() -> None:
    client = FakeClient()
    rc, _, err, _ = _run(["get", "nope"], client=client)
    assert rc == 1
    assert err == 'sdc-imgadm: InvalidUUID: invalid uuid: "nope"\n'
    assert client.calls == []


def test_api_error_uses_server_code() -> None:
    client = FakeClient()
    client.missing.add(UUID_A)
    rc, _, err, _ = _run(["get", UUID_A], client=client)
    assert rc == 1
    assert err == f"sdc-imgadm: ResourceNotFound: image {UUID_A} not found\n"


def test_debug_prints_traceback() -> None:
    client = FakeClient()
    client.missing.add(UUID_A)
    rc, _, err, _ = _run(["-d", "get", UUID_A], client=client)
    assert rc == 1
    assert "Traceback" in err


def test_get_file_to_path(tmp_path) -> None:
    target = tmp_path / "image.gz"
    client = FakeClient()
    rc, _, err, _ = _run(["getfile", UUID_A, "-o", str(target)], client=client)
    assert rc == 0
    assert target.read_bytes() == b"image bits"
    assert client.download.closed
    assert f"Saved image {UUID_A} file to {target}" in err


def test_get_file_name_version(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    rc, _, _, _ = _run(["get-file", "-O", UUID_A])
    assert rc == 0
    assert (tmp_path / "foo-1.0.0.gz").read_bytes() == b"image bits"


def test_get_file_checksum_mismatch(tmp_path) -> None:
    client = FakeClient()
    client.download = FakeResponse(b"image bits", md5=b"something else")
    rc, _, err, _ = _run(["get-file", UUID_A, "-o", str(tmp_path / "out")], client=client)
    assert rc == 1
    assert err.startswith("sdc-imgadm: ChecksumError: md5 checksum mismatch")
    assert not (tmp_path / "out").exists()


def test_create_with_file_and_activate(tmp_path) -> None:
    manifest = tmp_path / "manifest.json"
    manifest.write_text(json.dumps({"name": "base", "version": "1.0"}), encoding="utf-8")
    image_file = tmp_path / "base.zfs.gz"
    image_file.write_bytes(b"zfs stream")
    client = FakeClient()

    rc, out, err, _ = _run(
        ["create", "-m", str(manifest), "-f", str(image_file), "-A"], client=client
    )

    assert (rc, err) == (0, "")
    assert [call[0] for call in client.calls] == [
        "create_image",
        "add_image_file",
        "activate_image",
    ]
    assert client.calls[1] == ("add_image_file", UUID_A, "gzip")
    assert out == f"Created image {UUID_A} (foo@1.0.0)\n"


def test_create_rolls_back_on_upload_failure(tmp_path) -> None:
    manifest = tmp_path / "manifest.json"
    manifest.write_text(json.dumps({"name": "base", "version": "1.0"}), encoding="utf-8")
    image_file = tmp_path / "base.zfs"
    image_file.write_bytes(b"zfs stream")
    client = FakeClient()
    client.fail_upload = True

    rc, out, err, _ = _run(["create", "-m", str(manifest), "-f", str(image_file)], client=client)

    assert rc == 1
    assert out == ""
    assert err == "sdc-imgadm: UploadError: upload failed\n"
    assert client.calls[-1] == ("delete_image", UUID_A)


def test_create_manifest_from_stdin() -> None:
    client = FakeClient()
    stdin = io.StringIO(json.dumps({"name": "base", "version": "1.0"}))
    rc, out, _, _ = _run(["create", "-m", "-", "-j"], client=client, stdin=stdin)
    assert rc == 0
    assert json.loads(out)["uuid"] == UUID_A
    assert client.calls == [("create_image", {"name": "base", "version": "1.0"})]


def test_add_file_checksum_mismatch(tmp_path) -> None:
    image_file = tmp_path / "base.zfs.bz2"
    image_file.write_bytes(b"zfs stream")
    client = FakeClient()
    client.file_sha1 = "0" * 40

    rc, _, err, _ = _run(["addfile", "-f", str(image_file), UUID_A], client=client)

    assert rc == 1
    assert client.calls == [("add_image_file", UUID_A, "bzip2")]
    assert err.startswith("sdc-imgadm: ChecksumError: sha1 checksum mismatch")


def test_add_file_rejects_unknown_compression(tmp_path) -> None:
    image_file = tmp_path / "base.zfs"
    image_file.write_bytes(b"zfs stream")
    rc, _, err, _ = _run(["add-file", "-f", str(image_file), "-c", "zip", UUID_A])
    assert rc == 1
    assert err.startswith("sdc-imgadm: Usage: invalid compression")


def test_update_parses_json_values() -> None:
    client = FakeClient()
    rc, out, _, _ = _run(
        ["update", UUID_A, "public=true", "description=new thing"], client=client
    )
    assert rc == 0
    assert client.calls == [
        ("update_image", UUID_A, {"public": True, "description": "new thing"})
    ]
    assert out == f"Updated image {UUID_A} (foo@1.0.0)\n"


def test_update_without_changes() -> None:
    rc, _, err, _ = _run(["update", UUID_A])
    assert rc == 1
    assert err == "sdc-imgadm: Usage: no changes given\n"


def test_delete_batch() -> None:
    client = FakeClient()
    rc, out, _, _ = _run(["rm", UUID_A, UUID_B], client=client)
    assert rc == 0
    assert out.splitlines() == [f"Deleted image {UUID_A}", f"Deleted image {UUID_B}"]
    assert sorted(client.calls) == sorted([("delete_image", UUID_A), ("delete_image", UUID_B)])


def test_batch_single_failure_reports_its_own_code() -> None:
    client = FakeClient()
    client.missing.add(UUID_B)
    rc, out, err, _ = _run(["activate", UUID_A, UUID_B], client=client)
    assert rc == 1
    assert out == f"Activated image {UUID_A} (foo@1.0.0)\n"
    assert err == f"sdc-imgadm: ResourceNotFound: image {UUID_B} not found\n"


def test_delete_reports_images_deleted_before_failure() -> None:
    client = FakeClient()
    client.missing.add(UUID_B)
    rc, out, err, _ = _run(["rm", UUID_A, UUID_B], client=client)
    assert rc == 1
    assert out == f"Deleted image {UUID_A}\n"
    assert err == f"sdc-imgadm: ResourceNotFound: image {UUID_B} not found\n"


def test_batch_multiple_failures() -> None:
    client = FakeClient()
    client.missing.update({UUID_A, UUID_B})
    rc, _, err, _ = _run(["disable", UUID_A, UUID_B], client=client)
    assert rc == 1
    lines = err.splitlines()
    assert lines[0] == "sdc-imgadm: MultiError: 2 errors:"
    assert UUID_A in lines[1]
    assert UUID_B in lines[2]


def test_batch_validates_every_uuid_first() -> None:
    client = FakeClient()
    rc, _, err, _ = _run(["delete", UUID_A, "nope"], client=client)
    assert rc == 1
    assert "InvalidUUID" in err
    assert client.calls == []


def test_add_acl() -> None:
    client = FakeClient()
    rc, _, _, _ = _run(["add-acl", UUID_A, ACCOUNT], client=client)
    assert rc == 0
    assert client.calls == [("add_image_acl", UUID_A, [ACCOUNT])]


def test_feature_gated_commands() -> None:
    rc, _, err, _ = _run(["channels"], deployment=JOYENT_IMGADM)
    assert rc == 1
    assert "UnknownCommand" in err

    rc, _, err, _ = _run(["import", "-S", "https://images.joyent.com", UUID_A])
    assert (rc, err) == (0, "")

    rc, _, err, _ = _run(["import", UUID_A], deployment=UPDATES_IMGADM)
    assert rc == 1
    assert "UnknownCommand" in err


def test_channels_table() -> None:
    rc, out, _, _ = _run(["channels"], deployment=UPDATES_IMGADM)
    assert rc == 0
    assert out.splitlines() == [
        "NAME     DEFAULT  DESCRIPTION",
        "dev      true  all builds",
        "release  -     release builds",
    ]


def test_channel_add() -> None:
    client = FakeClient()
    rc, out, _, _ = _run(
        ["channel-add", "release", UUID_A], deployment=UPDATES_IMGADM, client=client
    )
    assert rc == 0
    assert client.calls == [("channel_add_image", UUID_A, "release")]
    assert out == f'Added to channel "release" image {UUID_A} (foo@1.0.0)\n'


def test_env_fallbacks_fill_missing_options() -> None:
    environ = {"UPDATES_IMGADM_CHANNEL": "staging", "UPDATES_IMGADM_INSECURE": "1"}
    _, _, _, cli = _run(["ping"], deployment=UPDATES_IMGADM, environ=environ)
    assert cli.opts.channel == "staging"
    assert cli.opts.insecure is True

    _, _, _, cli = _run(["-C", "dev", "ping"], deployment=UPDATES_IMGADM, environ=environ)
    assert cli.opts.channel == "dev"


def test_client_built_from_environment(monkeypatch) -> None:
    monkeypatch.setattr(ImgapiClient, "ping", lambda self: {"ping": "pong"})
    out = io.StringIO()
    err = io.StringIO()
    cli = ImgapiCLI(SDC_IMGADM, stdout=out, stderr=err, environ={"IMGAPI_URL": "http://imgapi.test"})

    assert cli.main(["ping"]) == 0
    assert cli.client.base_url == "http://imgapi.test"
    assert cli.client.auth is None


def test_missing_url_is_a_usage_error() -> None:
    out = io.StringIO()
    err = io.StringIO()
    cli = ImgapiCLI(SDC_IMGADM, stdout=out, stderr=err, environ={})
    assert cli.main(["ping"]) == 1
    assert err.getvalue().startswith("sdc-imgadm: Usage: no IMGAPI URL configured")


def test_config_file_url(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(ImgapiClient, "ping", lambda self: {"ping": "pong"})
    config_path = tmp_path / "config.toml"
    config_path.write_text('[sdc-imgadm]\nurl = "http://config.test"\n', encoding="utf-8")
    cli = ImgapiCLI(SDC_IMGADM, stdout=io.StringIO(), stderr=io.StringIO(), environ={})

    assert cli.main(["--config", str(config_path), "ping"]) == 0
    assert cli.client.base_url == "http://config.test"


@pytest.mark.parametrize("argv", [["help", "list", "extra"], ["ping", "extra"]])
def test_extra_arguments_are_usage_errors(argv) -> None:  # noqa: ANN001
    rc, _, err, _ = _run(argv)
    assert rc == 1
    assert err.startswith("sdc-imgadm: Usage: ")


def test_import_manifest_keeps_uuid(tmp_path) -> None:
    manifest = tmp_path / "manifest.json"
    manifest.write_text(
        json.dumps({"uuid": UUID_B, "name": "barbaz", "version": "2.0.0"}), encoding="utf-8"
    )
    client = FakeClient()

    rc, out, err, _ = _run(["import", "-m", str(manifest)], client=client)

    assert (rc, err) == (0, "")
    assert client.calls == [
        ("import_image", {"uuid": UUID_B, "name": "barbaz", "version": "2.0.0"})
    ]
    assert out == f"Imported image {UUID_B} (barbaz@2.0.0)\n"


def test_import_manifest_requires_uuid(tmp_path) -> None:
    manifest = tmp_path / "manifest.json"
    manifest.write_text(json.dumps({"name": "base", "version": "1.0"}), encoding="utf-8")
    client = FakeClient()

    rc, _, err, _ = _run(["import", "-m", str(manifest)], client=client)

    assert rc == 1
    assert err == "sdc-imgadm: Usage: imported manifests must have a uuid\n"
    assert client.calls == []


def test_import_rolls_back_on_upload_failure(tmp_path) -> None:
    manifest = tmp_path / "manifest.json"
    manifest.write_text(
        json.dumps({"uuid": UUID_B, "name": "barbaz", "version": "2.0.0"}), encoding="utf-8"
    )
    image_file = tmp_path / "barbaz.zfs.xz"
    image_file.write_bytes(b"zfs stream")
    client = FakeClient()
    client.fail_upload = True

    rc, out, err, _ = _run(
        ["import", "-m", str(manifest), "-f", str(image_file)], client=client
    )

    assert rc == 1
    assert out == ""
    assert err == "sdc-imgadm: UploadError: upload failed\n"
    assert [call[0] for call in client.calls] == ["import_image", "add_image_file", "delete_image"]
    assert client.calls[1] == ("add_image_file", UUID_B, "xz")
    assert client.calls[-1] == ("delete_image", UUID_B)


def test_add_icon(tmp_path) -> None:
    icon = tmp_path / "icon.png"
    icon.write_bytes(b"\x89PNG fake")
    client = FakeClient()

    rc, out, _, _ = _run(["add-icon", "-f", str(icon), UUID_A], client=client)

    assert rc == 0
    assert client.calls == [("add_image_icon", UUID_A, "image/png", b"\x89PNG fake")]
    assert out == f"Added icon to image {UUID_A} (foo@1.0.0)\n"


def test_add_icon_rejects_other_content_types(tmp_path) -> None:
    icon = tmp_path / "icon.txt"
    icon.write_text("not an image", encoding="utf-8")
    client = FakeClient()

    rc, _, err, _ = _run(["add-icon", "-f", str(icon), UUID_A], client=client)

    assert rc == 1
    assert err == f"sdc-imgadm: Usage: icon must be a png, jpeg or gif file: {icon}\n"
    assert client.calls == []


def test_delete_icon() -> None:
    client = FakeClient()
    rc, out, _, _ = _run(["delete-icon", UUID_A, "-j"], client=client)
    assert rc == 0
    assert client.calls == [("delete_image_icon", UUID_A)]
    assert json.loads(out)["icon"] is False


def test_export() -> None:
    client = FakeClient()
    rc, out, _, _ = _run(["export", "-m", "/admin/stor/exports", UUID_A], client=client)
    assert rc == 0
    assert client.calls == [("export_image", UUID_A, "/admin/stor/exports")]
    assert json.loads(out)["image_path"] == "/admin/stor/exports/foo-1.0.0.zfs.gz"


def test_export_requires_manta_path() -> None:
    client = FakeClient()
    rc, _, err, _ = _run(["export", UUID_A], client=client)
    assert rc == 1
    assert err == "sdc-imgadm: Usage: missing -m PATH\n"
    assert client.calls == []


def test_change_stor() -> None:
    client = FakeClient()
    rc, out, _, _ = _run(["change-stor", UUID_A, "manta"], client=client)
    assert rc == 0
    assert client.calls == [("admin_change_image_stor", UUID_A, "manta")]
    assert json.loads(out)["files"] == [{"stor": "manta"}]

    rc, _, err, _ = _run(["change-stor", UUID_A])
    assert rc == 1
    assert err == "sdc-imgadm: Usage: usage: change-stor UUID STOR\n"


def test_reload_auth_keys() -> None:
    client = FakeClient()
    rc, out, _, _ = _run(["reload-auth-keys"], client=client)
    assert (rc, out) == (0, "Reloaded auth keys\n")
    assert client.calls == [("admin_reload_auth_keys",)]
