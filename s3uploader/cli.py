"""Command line interface for the s3uploader package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .cli_progress import (
    SingleFileUploadProgress,
    render_configuration_summary,
    render_listing,
    render_upload_result,
)
from .exceptions import UploaderError
from .models import AdapterConfig, UploadRequest
from .orchestrator import StorageAdapter


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level and not os.getenv("LOG_LEVEL")):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level_name = log_level or os.getenv("LOG_LEVEL") or "INFO"
        level = getattr(logging, level_name.upper(), logging.INFO)

    from rich.logging import RichHandler

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))
    return logging.getLevelName(level)


def _normalize_prefix(prefix: Optional[str]) -> Optional[str]:
    if prefix is None:
        return None
    value = prefix.strip()
    if value in {"", "/"}:
        return None
    return value.strip("/")


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _build_config(args: argparse.Namespace) -> AdapterConfig:
    """Environment first, command-line flags on top."""
    return AdapterConfig.from_env(
        bucket=args.bucket,
        region=args.region,
        endpoint_url=args.endpoint_url,
        directory_prefix=_normalize_prefix(args.prefix),
        digest_algorithm=args.digest,
    )


async def _run_upload(adapter: StorageAdapter, args: argparse.Namespace) -> int:
    source = Path(args.source).expanduser()
    if not source.is_file():
        raise CLIError(f"source is not a file: {source}")

    request = UploadRequest.from_path(source, key=args.key)
    progress = SingleFileUploadProgress(source.name, request.size)
    progress.start()

    try:
        result = await adapter.upload(
            request,
            on_progress=progress.get_callback(),
            directory_prefix=_normalize_prefix(args.upload_prefix),
        )
    except UploaderError as exc:
        progress.complete(success=False, error=str(exc))
        raise

    progress.complete(success=True)
    render_upload_result(result)
    return 0


async def _run_ls(adapter: StorageAdapter, args: argparse.Namespace) -> int:
    keys = await adapter.ls(args.dirname or "")
    render_listing(keys)
    return 0


async def _run_rm(adapter: StorageAdapter, args: argparse.Namespace) -> int:
    await adapter.rm(args.key)
    print(f"Removed {args.key}", file=sys.stderr)
    return 0


async def _run_get(adapter: StorageAdapter, args: argparse.Namespace) -> int:
    if args.output is None or str(args.output) == "-":
        out = sys.stdout.buffer
        async for chunk in adapter.stream(args.key):
            out.write(chunk)
        out.flush()
        return 0

    output = Path(args.output).expanduser()
    handle = open(output, "wb")
    try:
        async for chunk in adapter.stream(args.key):
            await asyncio.to_thread(handle.write, chunk)
    finally:
        handle.close()
    print(f"Saved {args.key} -> {output}", file=sys.stderr)
    return 0


async def _run_url(adapter: StorageAdapter, args: argparse.Namespace) -> int:
    url = await adapter.url(args.operation, key=args.key, expires_in=args.expires)
    print(url)
    return 0


COMMANDS = {
    "upload": _run_upload,
    "ls": _run_ls,
    "rm": _run_rm,
    "get": _run_get,
    "url": _run_url,
}


async def _dispatch(config: AdapterConfig, args: argparse.Namespace) -> int:
    handler = COMMANDS[args.command]
    async with StorageAdapter(config) as adapter:
        return await handler(adapter, args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3-up",
        description="Stream files to S3-compatible storage with integrity digests.",
    )
    parser.add_argument("--bucket", default=None, help="Bucket name (default from S3_BUCKET)")
    parser.add_argument("--region", default=None, help="Region (default from S3_REGION)")
    parser.add_argument(
        "--endpoint-url",
        default=None,
        help="Custom endpoint for S3-compatible services (default from S3_ENDPOINT_URL)",
    )
    parser.add_argument(
        "--prefix",
        default=None,
        help="Directory prefix for resolved keys (default from S3_DIRECTORY_PREFIX)",
    )
    parser.add_argument(
        "--digest",
        default=None,
        help="Digest algorithm: md5, sha1, sha256, blake3, ... (default from S3_DIGEST_ALGORITHM or md5)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"s3-up {__version__}",
    )

    sub = parser.add_subparsers(dest="command")

    upload = sub.add_parser("upload", help="Upload a local file")
    upload.add_argument("source", type=Path, help="Source file path")
    upload.add_argument("-k", "--key", default=None, help="Explicit object key")
    upload.add_argument(
        "-p",
        "--prefix",
        dest="upload_prefix",
        default=None,
        help="Directory prefix for this upload only",
    )

    ls = sub.add_parser("ls", help="List object keys")
    ls.add_argument("dirname", nargs="?", default="", help="Directory to list (bucket root by default)")

    rm = sub.add_parser("rm", help="Remove an object")
    rm.add_argument("key", help="Object key")

    get = sub.add_parser("get", help="Download an object")
    get.add_argument("key", help="Object key")
    get.add_argument("-o", "--output", default=None, help="Output file ('-' or omitted for stdout)")

    url = sub.add_parser("url", help="Generate a signed URL")
    url.add_argument("key", help="Object key")
    url.add_argument("--operation", default="get_object", help="S3 client method (default: get_object)")
    url.add_argument("--expires", type=int, default=None, help="Lifetime in seconds")

    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.command is None:
        parser.print_help()
        return 0

    config = _build_config(args)

    if args.command == "upload" and not args.silent:
        render_configuration_summary(
            {
                "Source": str(args.source),
                "Bucket": config.bucket or "(missing)",
                "Region": config.region or "(default)",
                "Endpoint": config.endpoint_url or "(aws)",
                "Prefix": _normalize_prefix(args.upload_prefix) or config.directory_prefix or "-",
                "Key": args.key or "(resolved)",
                "Digest": config.digest_algorithm,
                "Env File": str(used_env_file) if used_env_file else "-",
                "Logging": effective_log_mode,
            }
        )

    try:
        return asyncio.run(_dispatch(config, args))
    except (CLIError, UploaderError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
