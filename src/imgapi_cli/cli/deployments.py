"""Concrete imgapi CLI bindings and their console entry points."""

from __future__ import annotations

import sys
from typing import Sequence

from imgapi_cli.cli.base import Deployment
from imgapi_cli.cli.commands import ImgapiCLI

JOYENT_IMGADM = Deployment(
    name="joyent-imgadm",
    url="https://images.joyent.com",
    auth="signature",
    description="Manage images on the Joyent Images repository (images.joyent.com).",
    envopts=(
        ("JOYENT_IMGADM_USER", "user"),
        ("JOYENT_IMGADM_IDENTITY", "identity"),
    ),
)

UPDATES_IMGADM = Deployment(
    name="updates-imgadm",
    url="https://updates.joyent.com",
    auth="signature",
    description="Manage images on the SDC updates server (updates.joyent.com).",
    envopts=(
        ("UPDATES_IMGADM_URL", "url"),
        ("UPDATES_IMGADM_USER", "user"),
        ("UPDATES_IMGADM_IDENTITY", "identity"),
        ("UPDATES_IMGADM_CHANNEL", "channel"),
        ("UPDATES_IMGADM_INSECURE", "insecure"),
    ),
    features=frozenset({"channels"}),
)

SDC_IMGADM = Deployment(
    name="sdc-imgadm",
    description="Manage images in an SDC datacenter's IMGAPI.",
    envopts=(("IMGAPI_URL", "url"),),
    features=frozenset({"import", "export", "admin"}),
)

DEPLOYMENTS = {d.name: d for d in (JOYENT_IMGADM, UPDATES_IMGADM, SDC_IMGADM)}


def main(
    argv: Sequence[str] | None = None,
    *,
    deployment: Deployment = SDC_IMGADM,
    stdout=sys.stdout,
    stderr=sys.stderr,
) -> int:
    cli = ImgapiCLI(deployment, stdout=stdout, stderr=stderr)
    return cli.main(sys.argv[1:] if argv is None else argv)


def joyent_imgadm() -> None:
    raise SystemExit(main(deployment=JOYENT_IMGADM))


def updates_imgadm() -> None:
    raise SystemExit(main(deployment=UPDATES_IMGADM))


def sdc_imgadm() -> None:
    raise SystemExit(main(deployment=SDC_IMGADM))
