#app\services\storage.py
import base64, requests, uuid
from app.core.config import settings

def upload_image(data: bytes, content_type: str, path: str) -> str:
    """Uploads to Supabase Storage via REST; returns public URL (bucket must be public)."""
    if not (settings.supabase_url and settings.supabase_service_role):
        # no storage configured: keep the photo inline
        b64 = base64.b64encode(data).decode("utf-8")
        return f"data:{content_type};base64,{b64}"
    base = settings.supabase_url.rstrip("/")
    bucket = settings.supabase_bucket
    url = f"{base}/storage/v1/object/{bucket}/{path}"
    r = requests.post(url, headers={
        "Authorization": f"Bearer {settings.supabase_service_role}",
        "Content-Type": content_type,
        "x-upsert": "true",
    }, data=data, timeout=30)
    r.raise_for_status()
    # public URL pattern:
    return f"{base}/storage/v1/object/public/{bucket}/{path}"

def make_object_key(issue_id: int, filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "jpg"
    return f"{issue_id}/{uuid.uuid4().hex}.{ext or 'jpg'}"
