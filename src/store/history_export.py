"""Full-history export writers.

This module writes the compact full-history payload as JSON to a local
file or an ``s3://`` object for static hosting.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from core.config import HistoryConfig
from core.errors import HistoryDependencyError, HistoryStoreError
from core.logging_config import get_logger
from core.s3_uri import S3Location, is_s3_uri, parse_s3_uri

_LOGGER = get_logger(__name__)


def export_history_payload(
    payload: Mapping[str, Any],
    output_uri: str,
    config: HistoryConfig,
    s3_client: Any | None = None,
) -> str:
    """Write a history payload to a local path or S3 object.

    Args:
        payload: JSON-serializable full-history payload.
        output_uri: Local file path or ``s3://bucket/key``.
        config: Runtime config with optional S3 session settings.
        s3_client: Optional pre-built S3 client.

    Returns:
        Written destination, as a path string or S3 URI.

    Raises:
        HistoryStoreError: If the destination cannot be written.
        HistoryDependencyError: If S3 export is requested without boto3.
    """
    body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    if is_s3_uri(output_uri):
        location = parse_s3_uri(output_uri)
        client = s3_client or create_s3_client(config)
        _upload_body(client, location, body)
        destination = location.uri
    else:
        destination = str(_write_local(Path(output_uri).expanduser(), body))
    _LOGGER.info("history_exported", destination=destination, byte_count=len(body))
    return destination


def create_s3_client(config: HistoryConfig) -> Any:
    """Create boto3 S3 client for exports.

    Args:
        config: Runtime config with optional session settings.

    Returns:
        Boto3 S3 client.

    Raises:
        HistoryDependencyError: If boto3 is missing.
    """
    try:
        import boto3
    except ImportError as error:
        raise HistoryDependencyError(
            "S3 export requires boto3, but it is not installed. "
            "Install boto3 to export history to s3:// destinations."
        ) from error
    session_kwargs: dict[str, str] = {}
    if config.s3_profile:
        session_kwargs["profile_name"] = config.s3_profile
    if config.s3_region:
        session_kwargs["region_name"] = config.s3_region
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")


def _upload_body(s3_client: Any, location: S3Location, body: bytes) -> None:
    try:
        s3_client.put_object(
            Bucket=location.bucket,
            Key=location.key,
            Body=body,
            ContentType="application/json",
        )
    except Exception as error:
        raise HistoryStoreError(
            f"Failed to export history to {location.uri}: {error}. "
            "Check AWS credentials and retry export."
        ) from error


def _write_local(output_path: Path, body: bytes) -> Path:
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(body)
    except OSError as error:
        raise HistoryStoreError(
            f"Failed to write history export to {output_path}: {error}. "
            "Check the output path and permissions."
        ) from error
    return output_path
