# signflow/routes/files.py
import os
from flask import Blueprint, current_app, send_from_directory

files_bp = Blueprint("files", __name__)

# Route pour servir un pdf depuis le stockage
@files_bp.route("/<path:key>")
def stored_file(key):
    folder = os.path.abspath(current_app.config["BLOB_FOLDER"])
    return send_from_directory(folder, key, mimetype="application/pdf")
