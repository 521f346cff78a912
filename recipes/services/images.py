"""
Service pour télécharger des images distantes et les enregistrer dans le stockage
(S3/MinIO via django-storages, ou stockage local)
"""
import logging
import re
import uuid
from typing import Optional

import requests
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30
MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10MB

CONTENT_TYPE_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/png': 'png',
    'image/webp': 'webp',
    'image/gif': 'gif',
}

DRIVE_ID_RE = re.compile(r'(?:id=|/d/)([a-zA-Z0-9_-]+)')


class ImageDownloadError(Exception):
    """Image distante inaccessible ou invalide"""


def resolve_download_url(url: str) -> str:
    """Les liens de partage Google Drive sont convertis en lien de téléchargement direct"""
    if 'drive.google.com' in url:
        match = DRIVE_ID_RE.search(url)
        if match:
            return f"https://drive.google.com/uc?export=download&id={match.group(1)}"
    return url


def download_image(image_url: str, folder: str = 'recipes') -> Optional[str]:
    """
    Télécharge une image depuis une URL externe et l'enregistre dans le stockage.

    Args:
        image_url: URL de l'image (les liens Google Drive sont acceptés)
        folder: dossier de destination dans le stockage

    Returns:
        Chemin relatif de l'image (ex: 'recipes/abc123.jpg'), None si aucune URL

    Raises:
        ImageDownloadError si l'image ne peut pas être récupérée
    """
    if not image_url:
        return None

    download_url = resolve_download_url(image_url)
    logger.info("[ImageDownloader] Downloading image from: %s", download_url)
    try:
        response = requests.get(download_url, timeout=REQUEST_TIMEOUT, headers={
            'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36'
        })
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise ImageDownloadError(f"Failed to download image: {e}") from e

    content_type = response.headers.get('Content-Type', '').split(';')[0].strip().lower()
    extension = CONTENT_TYPE_EXTENSIONS.get(content_type)
    if extension is None:
        # Google Drive renvoie une page HTML quand le fichier n'est pas public
        raise ImageDownloadError(f"URL does not point to an image ({content_type or 'unknown'})")

    content = response.content
    if len(content) > MAX_IMAGE_SIZE:
        raise ImageDownloadError(f"Image too large: {len(content)} bytes (max: {MAX_IMAGE_SIZE})")

    file_name = f"{folder}/{uuid.uuid4().hex}.{extension}"
    saved_path = default_storage.save(file_name, ContentFile(content))
    logger.info("[ImageDownloader] Stored image (%d bytes) at %s", len(content), saved_path)
    return saved_path
