# storage.py: project files (uploaded PDFs, rendered page images) on disk or S3

import shutil
from pathlib import Path
from typing import List

from . import config

if config.USE_S3:
    import boto3
    s3 = boto3.client("s3", region_name=config.S3_REGION)
else:
    s3 = None


class Storage:
    """Keys are relative paths such as ``<project_id>/pages/page-1.png``."""

    @staticmethod
    def local_path(key: str) -> Path:
        p = (config.WORK_DIR / key).resolve()
        if config.WORK_DIR.resolve() not in p.parents:
            raise ValueError(f"key escapes storage root: {key}")
        return p

    @staticmethod
    def save(file_bytes: bytes, key: str, content_type: str = "application/pdf") -> str:
        if s3 is not None:
            s3.put_object(Bucket=config.S3_BUCKET, Key=key, Body=file_bytes, ContentType=content_type)
            return key
        p = Storage.local_path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(file_bytes)
        return key

    @staticmethod
    def get(key: str) -> bytes:
        if s3 is not None:
            obj = s3.get_object(Bucket=config.S3_BUCKET, Key=key)
            return obj["Body"].read()
        p = Storage.local_path(key)
        if not p.is_file():
            raise FileNotFoundError(key)
        return p.read_bytes()

    @staticmethod
    def exists(key: str) -> bool:
        if s3 is not None:
            resp = s3.list_objects_v2(Bucket=config.S3_BUCKET, Prefix=key, MaxKeys=1)
            return any(o["Key"] == key for o in resp.get("Contents", []))
        try:
            return Storage.local_path(key).is_file()
        except ValueError:
            return False

    @staticmethod
    def list(prefix: str) -> List[str]:
        """File names directly under ``prefix`` (not recursive)."""
        prefix = prefix.rstrip("/") + "/"
        if s3 is not None:
            names = []
            paginator = s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=config.S3_BUCKET, Prefix=prefix, Delimiter="/"):
                names += [o["Key"][len(prefix):] for o in page.get("Contents", [])]
            return names
        d = Storage.local_path(prefix)
        if not d.is_dir():
            return []
        return [p.name for p in d.iterdir() if p.is_file()]

    @staticmethod
    def delete_prefix(prefix: str) -> int:
        prefix = prefix.rstrip("/") + "/"
        if s3 is not None:
            removed = 0
            paginator = s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=config.S3_BUCKET, Prefix=prefix):
                keys = [{"Key": o["Key"]} for o in page.get("Contents", [])]
                if keys:
                    s3.delete_objects(Bucket=config.S3_BUCKET, Delete={"Objects": keys})
                    removed += len(keys)
            return removed
        d = Storage.local_path(prefix)
        if not d.is_dir():
            return 0
        count = sum(1 for p in d.rglob("*") if p.is_file())
        shutil.rmtree(d)
        return count
