"""Almacenamiento de los PDF de cobranza.

Con ``DRIVE_ACCESS_TOKEN`` configurado los archivos se suben a Google Drive
(API REST v3) en carpetas ``<ruta>/<mes año>``; sin él se guardan en
``COBRANZAS_DIR`` y se sirven desde ``/cobranzas/archivo/<ruta>``.
"""
import json
import logging
import os
import re

import requests
from flask import current_app, url_for

log = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files?uploadType=multipart&fields=id"
FOLDER_MIME = "application/vnd.google-apps.folder"

MESES = ("enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
         "agosto", "septiembre", "octubre", "noviembre", "diciembre")


def nombre_mes(fecha):
    return f"{MESES[fecha.month - 1]} {fecha.year}"


def _safe_name(value):
    return re.sub(r'[\\/:*?"<>|]+', "_", str(value)).strip() or "sin_nombre"


def cobranzas_dir():
    directorio = current_app.config.get("COBRANZAS_DIR") or os.path.join(current_app.instance_path, "cobranzas")
    return os.path.abspath(directorio)


class LocalStorage:

    def __init__(self, base_dir):
        self.base_dir = base_dir

    def upload(self, content, filename, folders):
        relative = os.path.join(*[_safe_name(f) for f in folders], _safe_name(filename))
        path = os.path.join(self.base_dir, relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(content)
        log.info(f"PDF guardado en {path}")
        return url_for("cobranzas.descargar_archivo", ruta=relative.replace(os.sep, "/"), _external=True)


class DriveStorage:

    def __init__(self, access_token, root_folder=None):
        self.root_folder = root_folder
        self.session = requests.Session()
        self.session.headers["Authorization"] = f"Bearer {access_token}"

    def _find_or_create_folder(self, name, parent):
        query = f"name = '{name}' and mimeType = '{FOLDER_MIME}' and trashed = false"
        if parent:
            query += f" and '{parent}' in parents"
        response = self.session.get(DRIVE_FILES_URL, params={"q": query, "fields": "files(id)"}, timeout=15)
        response.raise_for_status()
        files = response.json().get("files", [])
        if files:
            return files[0]["id"]

        metadata = {"name": name, "mimeType": FOLDER_MIME}
        if parent:
            metadata["parents"] = [parent]
        response = self.session.post(DRIVE_FILES_URL, params={"fields": "id"}, json=metadata, timeout=15)
        response.raise_for_status()
        return response.json()["id"]

    def upload(self, content, filename, folders):
        parent = self.root_folder
        for folder in folders:
            parent = self._find_or_create_folder(_safe_name(folder).replace("'", ""), parent)

        metadata = {"name": filename, "parents": [parent] if parent else []}
        files = {
            "metadata": ("metadata", json.dumps(metadata), "application/json; charset=UTF-8"),
            "file": (filename, content, "application/pdf"),
        }
        response = self.session.post(DRIVE_UPLOAD_URL, files=files, timeout=30)
        response.raise_for_status()
        file_id = response.json()["id"]

        response = self.session.post(f"{DRIVE_FILES_URL}/{file_id}/permissions",
                                     json={"role": "reader", "type": "anyone"}, timeout=15)
        response.raise_for_status()

        log.info(f"PDF subido a Drive: {file_id}")
        return f"https://drive.google.com/file/d/{file_id}/view"


def get_storage():
    token = current_app.config.get("DRIVE_ACCESS_TOKEN")
    if token:
        return DriveStorage(token, current_app.config.get("DRIVE_ROOT_FOLDER"))
    return LocalStorage(cobranzas_dir())
