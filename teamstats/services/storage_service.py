"""
Object storage service for team logos and player images.

Talks to Minio (S3-compatible) through a lazy-initialized boto3 client.
Keys are stable per owner, so a new upload replaces the previous object.
"""

import logging
import os

logger = logging.getLogger(__name__)

# Lazy-initialized S3 client
_s3_client = None


def _get_config():
    """Read Minio configuration from environment at call time (not import time)."""
    return {
        "endpoint": os.getenv("MINIO_ENDPOINT"),
        "access_key": os.getenv("MINIO_ACCESS_KEY"),
        "secret_key": os.getenv("MINIO_SECRET_KEY"),
        "bucket": os.getenv("MINIO_BUCKET", "teamstats"),
    }


def _get_s3_client():
    """Get or create the boto3 client. Lazy-imports boto3 to avoid import-time dependency."""
    global _s3_client
    if _s3_client is None:
        cfg = _get_config()
        if not all([cfg["endpoint"], cfg["access_key"], cfg["secret_key"]]):
            raise ValueError(
                "Minio environment variables not configured. "
                "Set MINIO_ENDPOINT, MINIO_ACCESS_KEY, and MINIO_SECRET_KEY."
            )
        import boto3

        _s3_client = boto3.client(
            "s3",
            endpoint_url=cfg["endpoint"],
            aws_access_key_id=cfg["access_key"],
            aws_secret_access_key=cfg["secret_key"],
        )
    return _s3_client


def team_logo_key(team_id: int) -> str:
    return f"teams/{team_id}/logo"


def player_image_key(player_id: int) -> str:
    return f"players/{player_id}/image"


def object_url(key: str) -> str:
    cfg = _get_config()
    return f"{(cfg['endpoint'] or '').rstrip('/')}/{cfg['bucket']}/{key}"


def put_object(key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
    """
    Store bytes under ``key``.

    Raises whatever boto3 raises; callers turn that into a 500.

    Returns:
        URL of the stored object
    """
    client = _get_s3_client()
    cfg = _get_config()
    client.put_object(
        Bucket=cfg["bucket"],
        Key=key,
        Body=data,
        ContentType=content_type,
    )
    logger.info("Uploaded object to storage: %s", key)
    return object_url(key)


def delete_object(key: str) -> None:
    client = _get_s3_client()
    cfg = _get_config()
    client.delete_object(Bucket=cfg["bucket"], Key=key)
    logger.info("Deleted object from storage: %s", key)


def upload_team_logo(team_id: int, data: bytes, content_type: str) -> str:
    return put_object(team_logo_key(team_id), data, content_type)


def delete_team_logo(team_id: int) -> None:
    delete_object(team_logo_key(team_id))


def upload_player_image(player_id: int, data: bytes, content_type: str) -> str:
    return put_object(player_image_key(player_id), data, content_type)


def delete_player_image(player_id: int) -> None:
    delete_object(player_image_key(player_id))
