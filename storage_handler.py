# storage_handler.py

import base64
import binascii
import logging
import re

from errors import ValidationError

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)

# Image types accepted for upload and the file extension each is stored under
IMAGE_EXTENSIONS = {
    'image/png': 'png',
    'image/jpeg': 'jpg',
    'image/webp': 'webp',
}


def decode_image_payload(payload, default_mime_type: str = 'image/png'):
    """
    Turns an image payload into raw bytes.

    Accepts raw bytes, a bare base64 string, or a data URL such as
    "data:image/png;base64,iVBOR...". Returns (bytes, mime_type).
    """
    if isinstance(payload, (bytes, bytearray)):
        if not payload:
            raise ValidationError("Image data is empty")
        return bytes(payload), default_mime_type

    if not isinstance(payload, str) or not payload.strip():
        raise ValidationError("Image data is required")

    mime_type = default_mime_type
    encoded = payload.strip()
    match = DATA_URL_PATTERN.match(encoded)
    if match:
        mime_type = match.group('mime')
        encoded = match.group('data')
        if mime_type not in IMAGE_EXTENSIONS:
            raise ValidationError(f"Unsupported image type: {mime_type}")
    elif encoded.startswith('data:'):
        raise ValidationError("Invalid data URL")

    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data is not valid base64")
    if not data:
        raise ValidationError("Image data is empty")
    return data, mime_type


def game_image_path(creator_id: str, game_id: str, name: str, mime_type: str = 'image/png') -> str:
    extension = IMAGE_EXTENSIONS.get(mime_type)
    if extension is None:
        raise ValidationError(f"Unsupported image type: {mime_type}")
    return f"games/{creator_id}/{game_id}/{name}.{extension}"


def upload_image(bucket, data: bytes, path: str, content_type: str = 'image/png') -> str:
    """Uploads image bytes to the storage bucket and returns a durable public URL."""
    blob = bucket.blob(path)
    blob.upload_from_string(data, content_type=content_type)
    blob.make_public()
    logging.info(f"Uploaded {len(data)} bytes to {path}")
    return blob.public_url
