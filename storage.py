"""
AWS S3 attachment storage.
Uploads ticket files and hands out presigned download/view URLs.
"""
import json
import logging
import re
import uuid
from collections import namedtuple
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

import config
import database

logger = logging.getLogger(__name__)

Upload = namedtuple('Upload', ['filename', 'content_type', 'data'])


class AttachmentError(Exception):
    """A file failed validation or could not be stored."""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.status_code = status_code


def sanitize_filename(filename: str) -> str:
    """ASCII-only name safe for a Content-Disposition header."""
    name = re.sub(r'[^\x20-\x7E]', '', filename or '')
    name = re.sub(r'[^\w\s.-]', '', name)
    name = re.sub(r'\s+', '_', name)
    name = re.sub(r'_{2,}', '_', name).strip('_')
    return name[:100]


def format_file_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ('Bytes', 'KB', 'MB'):
        if size < 1024:
            return f'{size:g} {unit}'
        size = round(size / 1024, 2)
    return f'{size:g} GB'


class StorageService:
    """S3 client wrapper for ticket attachments."""

    def __init__(self, client=None):
        self.bucket = config.AWS_S3_BUCKET
        self.region = config.AWS_REGION
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                's3',
                region_name=self.region,
                aws_access_key_id=config.AWS_ACCESS_KEY_ID or None,
                aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY or None,
            )
        return self._client

    def is_configured(self) -> bool:
        return bool(self.bucket) and (self._client is not None or all([
            config.AWS_ACCESS_KEY_ID, config.AWS_SECRET_ACCESS_KEY, self.region]))

    def validate(self, upload: Upload):
        if not upload.filename or not upload.filename.strip():
            raise AttachmentError('File name is required')
        if len(upload.data) > config.MAX_FILE_SIZE_BYTES:
            raise AttachmentError(
                f'{upload.filename}: file size must be less than {format_file_size(config.MAX_FILE_SIZE_BYTES)}')
        if upload.content_type not in config.ALLOWED_FILE_TYPES:
            raise AttachmentError(f'{upload.filename}: file type {upload.content_type} is not allowed')

    def public_url(self, key: str) -> str:
        return f'https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}'

    def upload(self, upload: Upload) -> dict:
        """Store one file under uploads/<uuid> and return its attachment record."""
        self.validate(upload)
        file_uuid = str(uuid.uuid4())
        key = f'uploads/{file_uuid}'
        safe_name = sanitize_filename(upload.filename)
        uploaded_at = database.now_iso()

        logger.info('[Storage] Uploading %s (%d bytes) to s3://%s/%s',
                    upload.filename, len(upload.data), self.bucket, key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=upload.data,
                ContentType=upload.content_type,
                ContentDisposition=f'attachment; filename="{safe_name}"',
                Metadata={'originalName': safe_name, 'uploadedAt': uploaded_at},
            )
        except (BotoCoreError, ClientError) as e:
            logger.error('[Storage] Upload failed for %s: %s', upload.filename, e)
            raise AttachmentError(f'Failed to upload file {upload.filename}: {e}', status_code=502) from e

        return {
            'uuid': file_uuid,
            'originalName': upload.filename,
            's3Key': key,
            's3Url': self.public_url(key),
            'size': len(upload.data),
            'type': upload.content_type,
            'uploadedAt': uploaded_at,
        }

    def upload_files(self, uploads: List[Upload]) -> List[dict]:
        """
        Upload files one after another. Either every file is stored or none is:
        on failure the objects already written are removed and the error is raised.
        """
        if not uploads:
            return []
        if len(uploads) > config.MAX_FILES_PER_TICKET:
            raise AttachmentError(f'Maximum {config.MAX_FILES_PER_TICKET} files allowed')
        if not self.is_configured():
            raise AttachmentError('Attachment storage is not configured', status_code=503)

        for upload in uploads:
            self.validate(upload)

        stored = []
        try:
            for upload in uploads:
                stored.append(self.upload(upload))
        except AttachmentError:
            self.delete_all(stored)
            raise
        return stored

    def delete_all(self, attachments: List[dict]) -> int:
        """Best-effort removal of stored attachments; returns how many were deleted."""
        return sum(1 for attachment in attachments if self.delete(attachment['s3Key']))

    def delete(self, key: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning('[Storage] Could not delete %s: %s', key, e)
            return False

    def get_signed_download_url(self, key: str, expires_in: Optional[int] = None) -> str:
        return self.client.generate_presigned_url(
            'get_object',
            Params={'Bucket': self.bucket, 'Key': key},
            ExpiresIn=expires_in or config.SIGNED_URL_EXPIRY_SECONDS,
        )

    def get_signed_view_url(self, key: str, expires_in: Optional[int] = None) -> str:
        return self.client.generate_presigned_url(
            'get_object',
            Params={'Bucket': self.bucket, 'Key': key, 'ResponseContentDisposition': 'inline'},
            ExpiresIn=expires_in or config.SIGNED_URL_EXPIRY_SECONDS,
        )

    def with_signed_urls(self, attachments: list, expires_in: Optional[int] = None) -> List[dict]:
        """Copy attachment records with downloadUrl/viewUrl filled in."""
        result = []
        for attachment in attachments or []:
            if isinstance(attachment, str):
                try:
                    attachment = json.loads(attachment)
                except ValueError:
                    # legacy rows stored a bare URL
                    result.append({
                        'uuid': '', 'originalName': 'Unknown File', 's3Key': '', 's3Url': attachment,
                        'size': 0, 'type': 'unknown', 'uploadedAt': '',
                        'downloadUrl': attachment, 'viewUrl': attachment,
                    })
                    continue

            item = dict(attachment)
            key = item.get('s3Key')
            if not key and item.get('s3Url'):
                key = '/'.join(item['s3Url'].split('/')[3:])
            if not key:
                item['downloadUrl'] = item.get('s3Url')
                item['viewUrl'] = item.get('s3Url')
            else:
                item['downloadUrl'] = self.get_signed_download_url(key, expires_in)
                item['viewUrl'] = self.get_signed_view_url(key, expires_in)
            result.append(item)
        return result


# Singleton instance
storage = StorageService()
