import uuid

from app.core.config import get_settings
from app.core.supabase_client import supabase_admin

settings = get_settings()


def _bucket():
    return supabase_admin().storage.from_(settings.STORAGE_BUCKET)


def upload_to_storage(path: str, file_bytes: bytes, content_type: str) -> str:
    """
    Upload raw bytes to Supabase Storage and return a public URL.

    If a file already exists at this path, it will be overwritten
    thanks to the 'upsert' option.

    Args:
        path: Full object path inside the bucket.
              Example: "vendors/<uuid>/documents/<uuid>.pdf"
        file_bytes: File content in bytes.
        content_type: MIME type stored with the object.

    Raises:
        Any exception raised by Supabase client if upload fails.
    """
    _bucket().upload(path, file_bytes, {"upsert": "true", "content-type": content_type})
    return _bucket().get_public_url(path)


def delete_from_storage(path: str) -> None:
    """
    Delete a file from Supabase Storage by its object path.

    Example path (relative to bucket):
        'vendors/<uuid>/documents/<uuid>.pdf'
    """
    # Supabase Python client expects a list of paths.
    _bucket().remove([path])


def generate_filename(ext: str) -> str:
    """
    Generate a random filename using UUID4.

    Args:
        ext: File extension without dot (e.g. "pdf", "png")

    Returns:
        A filename like "<uuid4>.pdf"
    """
    return f"{uuid.uuid4()}.{ext}"
