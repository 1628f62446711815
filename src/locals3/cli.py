"""locals3 CLI - bucket and object operations on a local storage root.

Usage:
    locals3 [--root DIR] [--verbose] mb BUCKET
    locals3 [--root DIR] [--verbose] rb BUCKET
    locals3 [--root DIR] [--verbose] ls [BUCKET] [--prefix PREFIX]
    locals3 [--root DIR] [--verbose] put BUCKET KEY [--file PATH] [--content-type TYPE]
        [--meta KEY=VALUE ...]
    locals3 [--root DIR] [--verbose] get BUCKET KEY [--out PATH]
    locals3 [--root DIR] [--verbose] head BUCKET KEY
    locals3 [--root DIR] [--verbose] rm BUCKET KEY
    locals3 [--root DIR] [--verbose] cp SRC_BUCKET SRC_KEY DST_BUCKET DST_KEY

Results are printed to stdout as JSON with sorted keys, except for ``get``
without ``--out``, which writes the object content to stdout.

Exit codes:
    0: Success
    1: Internal error (unexpected)
    2: Storage error (invalid name, missing bucket or object, non-empty bucket,
       invalid configuration or arguments)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from locals3.observability.tracing import configure_tracing, flush_tracing
from locals3.storage import (
    ObjectStorageError,
    ObjectStore,
    StorageConfigError,
    create_object_store,
    load_storage_config,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ENV_LOG_LEVEL = "LOCALS3_LOG_LEVEL"


class CLIArgumentError(Exception):
    """Raised when a command argument cannot be interpreted."""


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _make_error_result(code: str, message: str) -> dict[str, Any]:
    """Create an error result dict."""
    return {"error": {"code": code, "message": message}}


def _configure_logging(verbose: bool) -> None:
    """Send log records to stderr; stdout carries command output only."""
    if verbose:
        level = logging.DEBUG
    else:
        level_name = os.environ.get(ENV_LOG_LEVEL, "").strip().upper() or "WARNING"
        level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _parse_meta(pairs: list[str] | None) -> dict[str, str]:
    """Parse repeated KEY=VALUE arguments into a metadata dict."""
    metadata: dict[str, str] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise CLIArgumentError(f"Metadata must be KEY=VALUE, got '{pair}'")
        k, v = pair.split("=", 1)
        if not k:
            raise CLIArgumentError(f"Metadata key must not be empty, got '{pair}'")
        metadata[k] = v
    return metadata


def _open_store(args: argparse.Namespace) -> ObjectStore:
    return create_object_store(load_storage_config(args.root))


def cmd_mb(args: argparse.Namespace) -> int:
    """Create a bucket."""
    bucket = _open_store(args).create_bucket(args.bucket)
    _output_json(bucket.to_dict())
    return 0


def cmd_rb(args: argparse.Namespace) -> int:
    """Delete an empty bucket."""
    bucket = _open_store(args).delete_bucket(args.bucket)
    _output_json({"bucket": bucket, "deleted": True})
    return 0


def cmd_ls(args: argparse.Namespace) -> int:
    """List buckets, or the objects of one bucket."""
    store = _open_store(args)
    if args.bucket is None:
        buckets = store.list_buckets()
        _output_json({"buckets": [b.to_dict() for b in buckets]})
        return 0

    objects = store.list_objects(args.bucket, args.prefix)
    _output_json(
        {
            "bucket": args.bucket,
            "prefix": args.prefix,
            "objects": [o.to_dict() for o in objects],
        }
    )
    return 0


def cmd_put(args: argparse.Namespace) -> int:
    """Upload an object from a file or from stdin."""
    metadata = _parse_meta(args.meta)
    store = _open_store(args)

    if args.file is None:
        result = store.put_object(
            args.bucket,
            args.key,
            sys.stdin.buffer,
            metadata,
            content_type=args.content_type,
        )
    else:
        with open(args.file, "rb") as f:
            result = store.put_object(
                args.bucket,
                args.key,
                f,
                metadata,
                content_type=args.content_type,
            )

    _output_json(result.to_dict())
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    """Download an object to a file or to stdout."""
    stored = _open_store(args).get_object(args.bucket, args.key)

    if args.out is None:
        sys.stdout.buffer.write(stored.body)
        sys.stdout.buffer.flush()
        return 0

    Path(args.out).write_bytes(stored.body)
    _output_json(
        {
            "bucket": args.bucket,
            "key": args.key,
            "metadata": stored.metadata.to_dict(),
            "out": args.out,
        }
    )
    return 0


def cmd_head(args: argparse.Namespace) -> int:
    """Show object metadata."""
    metadata = _open_store(args).get_object_metadata(args.bucket, args.key)
    _output_json({"bucket": args.bucket, "key": args.key, "metadata": metadata.to_dict()})
    return 0


def cmd_rm(args: argparse.Namespace) -> int:
    """Delete an object."""
    key = _open_store(args).delete_object(args.bucket, args.key)
    _output_json({"bucket": args.bucket, "key": key, "deleted": True})
    return 0


def cmd_cp(args: argparse.Namespace) -> int:
    """Copy an object."""
    result = _open_store(args).copy_object(
        args.src_bucket, args.src_key, args.dst_bucket, args.dst_key
    )
    _output_json(result.to_dict())
    return 0


COMMAND_DISPATCH: dict[str, Callable[[argparse.Namespace], int]] = {
    "mb": cmd_mb,
    "rb": cmd_rb,
    "ls": cmd_ls,
    "put": cmd_put,
    "get": cmd_get,
    "head": cmd_head,
    "rm": cmd_rm,
    "cp": cmd_cp,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="locals3",
        description="locals3 - local S3-style object storage",
    )
    parser.add_argument(
        "--root",
        metavar="DIR",
        default=None,
        help="Storage root directory (overrides LOCALS3_ROOT_DIR)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Enable debug logging on stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    mb_parser = subparsers.add_parser("mb", help="Create a bucket")
    mb_parser.add_argument("bucket", help="Bucket name")

    rb_parser = subparsers.add_parser("rb", help="Delete an empty bucket")
    rb_parser.add_argument("bucket", help="Bucket name")

    ls_parser = subparsers.add_parser("ls", help="List buckets or objects")
    ls_parser.add_argument("bucket", nargs="?", default=None, help="Bucket to list")
    ls_parser.add_argument("--prefix", default="", help="Only list keys with this prefix")

    put_parser = subparsers.add_parser("put", help="Upload an object")
    put_parser.add_argument("bucket", help="Bucket name")
    put_parser.add_argument("key", help="Object key")
    put_parser.add_argument(
        "--file",
        metavar="PATH",
        default=None,
        help="File to upload (reads from stdin if omitted)",
    )
    put_parser.add_argument("--content-type", default=None, help="MIME type of the content")
    put_parser.add_argument(
        "--meta",
        metavar="KEY=VALUE",
        action="append",
        help="User metadata field (repeatable)",
    )

    get_parser = subparsers.add_parser("get", help="Download an object")
    get_parser.add_argument("bucket", help="Bucket name")
    get_parser.add_argument("key", help="Object key")
    get_parser.add_argument(
        "--out",
        metavar="PATH",
        default=None,
        help="File to write (writes content to stdout if omitted)",
    )

    head_parser = subparsers.add_parser("head", help="Show object metadata")
    head_parser.add_argument("bucket", help="Bucket name")
    head_parser.add_argument("key", help="Object key")

    rm_parser = subparsers.add_parser("rm", help="Delete an object")
    rm_parser.add_argument("bucket", help="Bucket name")
    rm_parser.add_argument("key", help="Object key")

    cp_parser = subparsers.add_parser("cp", help="Copy an object")
    cp_parser.add_argument("src_bucket", help="Source bucket")
    cp_parser.add_argument("src_key", help="Source key")
    cp_parser.add_argument("dst_bucket", help="Destination bucket")
    cp_parser.add_argument("dst_key", help="Destination key")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Internal error (unexpected)
        2: Storage, configuration or argument error
    """
    try:
        parser = create_parser()
        args = parser.parse_args(argv)

        if args.command is None:
            parser.print_help()
            return 0

        _configure_logging(args.verbose)
        configure_tracing()
        try:
            return COMMAND_DISPATCH[args.command](args)
        finally:
            flush_tracing()

    except ObjectStorageError as e:
        logger.debug("Command failed: %s", e)
        _output_json(_make_error_result(type(e).__name__, str(e)))
        return 2
    except (StorageConfigError, CLIArgumentError) as e:
        _output_json(_make_error_result(type(e).__name__, str(e)))
        return 2
    except OSError as e:
        # Local input/output files of put/get.
        _output_json(_make_error_result("OSError", str(e)))
        return 2
    except Exception as e:
        # Fail-closed: unexpected errors return exit code 1
        _output_json(_make_error_result("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
