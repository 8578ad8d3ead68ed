import os
import socket
import sys
import traceback
import uuid
from typing import List, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request, send_file
from werkzeug.utils import secure_filename

from data_paths import ensure_data_root, exports_dir
from database import ANDROID_LOCALE, ROOM_IDENTITY_HASH, USER_VERSION, describe_target_schema
from services.converter import (
    OUTPUT_FORMATS,
    ConversionError,
    build_download_name,
    detect_file_type,
    generate_target,
    parse_source,
)
from services.cubic_export import ExportError
from services.sqlite_engine import SqliteEngine

# Load environment variables from .env file
load_dotenv()

# --- App Initialization ---
DEFAULT_PORT = 5002
DEFAULT_MAX_UPLOAD_MB = 200

MIMETYPES = {
    'sqlite': 'application/vnd.sqlite3',
    'csv': 'text/csv',
}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


app = Flask(__name__)
app.config['JSON_SORT_KEYS'] = False
app.config['MAX_CONTENT_LENGTH'] = _env_int('BACKFIX_MAX_UPLOAD_MB', DEFAULT_MAX_UPLOAD_MB) * 1024 * 1024

# One engine per application; conversions share its initialised runtime.
sqlite_engine = SqliteEngine()
app.extensions['sqlite_engine'] = sqlite_engine


def _engine() -> SqliteEngine:
    return app.extensions['sqlite_engine']


def _read_upload():
    """Return ``(filename, data)`` or an error response tuple."""
    if 'file' not in request.files:
        return None, (jsonify({"status": "error", "message": "No file part"}), 400)
    file = request.files['file']
    if not file.filename:
        return None, (jsonify({"status": "error", "message": "No selected file"}), 400)
    file.stream.seek(0)
    return (file.filename, file.stream.read()), None


def _selected_playlists() -> Optional[List[int]]:
    values = request.form.getlist('playlists') or request.args.getlist('playlists')
    ids: List[int] = []
    for value in values:
        for part in str(value).split(','):
            part = part.strip()
            if part:
                ids.append(int(part))
    return ids or None


@app.errorhandler(413)
def upload_too_large(_exc):
    return jsonify({"status": "error", "message": "Uploaded file is too large."}), 413


@app.route('/api/schema', methods=['GET'])
def get_schema():
    """Describe the Cubic Music schema every export is written with."""
    return jsonify({
        "status": "success",
        "userVersion": USER_VERSION,
        "identityHash": ROOM_IDENTITY_HASH,
        "locale": ANDROID_LOCALE,
        "tables": [table.to_dict() for table in describe_target_schema()],
    })


@app.route('/api/detect', methods=['POST'])
def detect_upload():
    upload, error = _read_upload()
    if error:
        return error
    _, data = upload
    return jsonify({"status": "success", "fileType": detect_file_type(data)})


@app.route('/api/convert', methods=['POST'])
def convert_upload():
    """Parse an uploaded backup and return the conversion report."""
    upload, error = _read_upload()
    if error:
        return error
    filename, data = upload

    try:
        result = parse_source(data, engine=_engine())
    except ConversionError as exc:
        app.logger.warning("Rejected upload %s: %s", filename, exc)
        return jsonify({"status": "error", "message": str(exc)}), 400
    except Exception as exc:
        app.logger.error(f"Error converting {filename}: {exc}")
        app.logger.error(traceback.format_exc())
        return jsonify({"status": "error", "message": "Failed to read the uploaded backup."}), 500

    payload = {"status": "success", "fileType": detect_file_type(data)}
    payload.update(result.to_dict())
    return jsonify(payload)


@app.route('/api/export', methods=['POST'])
def export_upload():
    """Convert an uploaded backup and stream the Cubic Music file back."""
    upload, error = _read_upload()
    if error:
        return error
    filename, data = upload

    output_format = (request.form.get('format') or request.args.get('format') or 'sqlite').lower()
    if output_format not in OUTPUT_FORMATS:
        return jsonify({"status": "error", "message": f"Unsupported format '{output_format}'."}), 400
    try:
        selected = _selected_playlists()
    except ValueError:
        return jsonify({"status": "error", "message": "Playlist ids must be integers."}), 400

    try:
        result = parse_source(data, engine=_engine())
        payload = generate_target(result, selected, output_format, engine=_engine())
    except ConversionError as exc:
        app.logger.warning("Rejected upload %s: %s", filename, exc)
        return jsonify({"status": "error", "message": str(exc)}), 400
    except ExportError as exc:
        app.logger.error("Export failed: %s", exc)
        return jsonify({"status": "error", "message": str(exc)}), 500
    except Exception as exc:  # pragma: no cover - defensive logging
        app.logger.error(f"Error exporting {filename}: {exc}")
        app.logger.error(traceback.format_exc())
        return jsonify({"status": "error", "message": "Failed to create the converted backup."}), 500

    download_name = secure_filename(build_download_name(filename, output_format)) or build_download_name('', output_format)
    export_path = exports_dir() / f"{uuid.uuid4().hex}_{download_name}"
    if isinstance(payload, str):
        export_path.write_text(payload, encoding='utf-8')
    else:
        export_path.write_bytes(payload)

    response = send_file(
        export_path,
        mimetype=MIMETYPES[output_format],
        as_attachment=True,
        download_name=download_name,
    )

    @response.call_on_close
    def cleanup():
        try:
            if export_path.exists():
                export_path.unlink()
        except Exception as cleanup_exc:  # pragma: no cover - defensive logging
            app.logger.error("Error cleaning up export file: %s", cleanup_exc)

    return response


def is_port_in_use(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('127.0.0.1', port)) == 0


def main():
    port = _env_int('BACKFIX_PORT', DEFAULT_PORT)
    if is_port_in_use(port):
        print(f"Port {port} is already in use.")
        sys.exit(1)
    ensure_data_root()
    print(f"Port {port} is free. Starting new server.")
    app.run(host='0.0.0.0', port=port, debug=False)


if __name__ == '__main__':
    main()
