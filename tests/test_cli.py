"""Tests for s3-up CLI helpers."""
import logging
import os

import pytest

from s3uploader import cli
from s3uploader.cli import (
    CLIError,
    _build_config,
    _build_parser,
    _load_env_file,
    _normalize_prefix,
    _setup_logging,
    _strip_optional_quotes,
    run_cli,
)


@pytest.fixture(autouse=True)
def restore_logging():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    logging.disable(logging.NOTSET)
    for handler in list(root_logger.handlers):
        if handler not in handlers:
            root_logger.removeHandler(handler)
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in (
        "S3_BUCKET",
        "S3_ACCESS_KEY",
        "S3_SECRET_KEY",
        "S3_REGION",
        "S3_ENDPOINT_URL",
        "S3_DIRECTORY_PREFIX",
        "S3_DIGEST_ALGORITHM",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    # no stray .env picked up from the working directory
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_normalize_prefix():
    assert _normalize_prefix(None) is None
    assert _normalize_prefix("") is None
    assert _normalize_prefix(" / ") is None
    assert _normalize_prefix("/uploads/") == "uploads"
    assert _normalize_prefix("media/2026") == "media/2026"


def test_strip_optional_quotes():
    assert _strip_optional_quotes("'value'") == "value"
    assert _strip_optional_quotes('"value"') == "value"
    assert _strip_optional_quotes("'value") == "'value"


def test_load_env_file(tmp_path, clean_env):
    env_path = tmp_path / "s3.env"
    env_path.write_text(
        "\n".join(
            [
                "# storage",
                "S3_BUCKET=media",
                "S3_REGION='eu-west-1'",
                "export S3_DIRECTORY_PREFIX=uploads",
                "not a pair",
            ]
        ),
        encoding="utf-8",
    )
    clean_env.setenv("S3_REGION", "us-east-1")

    _load_env_file(env_path)

    assert os.environ["S3_BUCKET"] == "media"
    assert os.environ["S3_REGION"] == "us-east-1"
    assert os.environ["S3_DIRECTORY_PREFIX"] == "uploads"

    _load_env_file(env_path, override=True)
    assert os.environ["S3_REGION"] == "eu-west-1"


def test_load_env_file_missing(tmp_path):
    with pytest.raises(CLIError, match="not found"):
        _load_env_file(tmp_path / "missing.env")


def test_setup_logging_silent_by_default(clean_env):
    assert _setup_logging(debug=False, silent=False, log_level=None) == "silent"
    assert logging.getLogger().level > logging.CRITICAL


def test_setup_logging_debug(clean_env):
    assert _setup_logging(debug=True, silent=False, log_level=None) == "DEBUG"
    assert logging.getLogger().level == logging.DEBUG


def test_setup_logging_explicit_level(clean_env):
    assert _setup_logging(debug=False, silent=False, log_level="warning") == "WARNING"


def test_setup_logging_silent_wins(clean_env):
    assert _setup_logging(debug=True, silent=True, log_level="INFO") == "silent"


def test_build_config_flags_override_env(clean_env):
    clean_env.setenv("S3_BUCKET", "from-env")
    clean_env.setenv("S3_REGION", "eu-west-1")
    args = _build_parser().parse_args(["--bucket", "from-flag", "--prefix", "/uploads/", "--digest", "sha256", "ls"])

    config = _build_config(args)

    assert config.bucket == "from-flag"
    assert config.region == "eu-west-1"
    assert config.directory_prefix == "uploads"
    assert config.digest_algorithm == "sha256"


def test_parser_subcommands():
    parser = _build_parser()

    args = parser.parse_args(["upload", "report.csv", "--key", "a/b.csv", "--prefix", "tmp"])
    assert args.command == "upload"
    assert args.key == "a/b.csv"
    assert args.upload_prefix == "tmp"

    args = parser.parse_args(["url", "a.txt", "--operation", "put_object", "--expires", "60"])
    assert (args.key, args.operation, args.expires) == ("a.txt", "put_object", 60)

    args = parser.parse_args(["get", "a.txt", "-o", "out.bin"])
    assert args.output == "out.bin"


def test_run_cli_without_command(clean_env, capsys):
    assert run_cli([]) == 0
    assert "s3-up" in capsys.readouterr().out


def test_run_cli_missing_env_file(clean_env, tmp_path, capsys):
    assert run_cli(["--env-file", str(tmp_path / "nope.env"), "ls"]) == 1
    assert "env file not found" in capsys.readouterr().err


def test_run_cli_missing_bucket(clean_env, capsys):
    assert run_cli(["ls"]) == 1
    assert "bucket is required" in capsys.readouterr().err


class FakeAdapter:
    instances = []

    def __init__(self, config):
        self.config = config
        FakeAdapter.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False

    async def ls(self, dirname=""):
        return [f"{dirname or 'root'}/a.txt", f"{dirname or 'root'}/b.txt"]

    async def url(self, operation, key=None, expires_in=None):
        return f"https://signed.example/{key}?op={operation}&expires={expires_in}"

    async def stream(self, key):
        yield b"chunk-1"
        yield b"chunk-2"


def test_run_cli_ls(clean_env, monkeypatch, capsys):
    monkeypatch.setattr(cli, "StorageAdapter", FakeAdapter)

    assert run_cli(["--bucket", "media", "ls", "uploads"]) == 0

    out = capsys.readouterr().out
    assert "uploads/a.txt" in out
    assert "uploads/b.txt" in out
    assert FakeAdapter.instances[-1].config.bucket == "media"


def test_run_cli_url(clean_env, monkeypatch, capsys):
    monkeypatch.setattr(cli, "StorageAdapter", FakeAdapter)

    assert run_cli(["--bucket", "media", "url", "a.txt", "--expires", "60"]) == 0
    assert capsys.readouterr().out.strip() == "https://signed.example/a.txt?op=get_object&expires=60"


def test_run_cli_get_to_file(clean_env, monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "StorageAdapter", FakeAdapter)
    output = tmp_path / "out.bin"

    assert run_cli(["--bucket", "media", "get", "a.txt", "-o", str(output)]) == 0
    assert output.read_bytes() == b"chunk-1chunk-2"
