"""
Blob Storage

Stores original and signed PDFs under BLOB_FOLDER and serves them
through the /files route. Sources can also be fetched from any
public http(s) URL.
"""

import logging
import os

import requests
from flask import current_app

from .errors import SourceFetchError

logger = logging.getLogger(__name__)


def _blob_path(key: str) -> str:
    folder = os.path.abspath(current_app.config["BLOB_FOLDER"])
    path = os.path.abspath(os.path.join(folder, key))
    if not path.startswith(folder + os.sep):
        raise ValueError(f"Cle de stockage invalide: {key}")
    return path


def public_url(key: str) -> str:
    return f"{current_app.config['BASE_URL']}/files/{key}"


def save_pdf(filename: str, data: bytes) -> tuple[str, str]:
    """
    Write a PDF to the blob store.

    Returns:
        tuple: (public_url, storage_key)
    """
    path = _blob_path(filename)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    logger.info(f"PDF stocke: {filename} ({len(data)} octets)")
    return public_url(filename), filename


def delete_pdf(key: str):
    if not key:
        return
    try:
        os.remove(_blob_path(key))
    except FileNotFoundError:
        pass


def fetch_bytes(location: str) -> bytes:
    """
    Retrieve the raw bytes of a stored document.

    `location` is either an absolute http(s) URL or a blob key.
    Any failure raises SourceFetchError.
    """
    if not location:
        raise SourceFetchError("Aucun PDF source", location=location)

    if location.startswith(("http://", "https://")):
        try:
            response = requests.get(location, timeout=current_app.config["FETCH_TIMEOUT"])
        except requests.exceptions.RequestException as e:
            raise SourceFetchError(f"Echec du telechargement du PDF: {e}", location=location) from e
        if response.status_code // 100 != 2:
            raise SourceFetchError(
                f"Echec du telechargement du PDF: {response.status_code} {location}",
                location=location,
                status_code=response.status_code,
            )
        return response.content

    try:
        with open(_blob_path(location), "rb") as f:
            return f.read()
    except (OSError, ValueError) as e:
        raise SourceFetchError(f"PDF introuvable dans le stockage: {location}", location=location) from e
