"""imgapi-cli public surface."""

from imgapi_cli.batch import run_batch
from imgapi_cli.client import ImgapiClient
from imgapi_cli.errors import (
    APIError,
    ChecksumError,
    ClientError,
    ImgapiCliError,
    ImgapiClientError,
    ImgapiRequestError,
    ImgapiTransportError,
    InternalError,
    InvalidFieldError,
    InvalidManifestDataError,
    InvalidUUIDError,
    MultiError,
    NoHelpError,
    SizeMismatchError,
    UnknownCommandError,
    UnknownOptionError,
    UsageError,
    classify_error,
)
from imgapi_cli.manifest import ImageManifest, parse_manifest, validate_uuid
from imgapi_cli.steps import Step, run_steps
from imgapi_cli.tabulate import tabulate
from imgapi_cli.transfer import TransferSession, UploadStream, download_to

__all__ = [
    "ImgapiClient",
    "ImgapiClientError",
    "ImgapiRequestError",
    "ImgapiTransportError",
    "ImgapiCliError",
    "APIError",
    "ChecksumError",
    "ClientError",
    "InternalError",
    "InvalidFieldError",
    "InvalidManifestDataError",
    "InvalidUUIDError",
    "MultiError",
    "NoHelpError",
    "SizeMismatchError",
    "UnknownCommandError",
    "UnknownOptionError",
    "UsageError",
    "classify_error",
    "ImageManifest",
    "parse_manifest",
    "validate_uuid",
    "Step",
    "run_steps",
    "run_batch",
    "tabulate",
    "TransferSession",
    "UploadStream",
    "download_to",
]
