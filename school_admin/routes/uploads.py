"""
Image upload routes and serving of stored files.
"""

import logging

from flask import Blueprint, current_app, request, send_from_directory

from school_admin.routes.api_utils import admin_required, get_services
from school_admin.utils.exceptions import ValidationError
from school_admin.utils.helpers import create_response, error_response

logger = logging.getLogger(__name__)

upload_bp = Blueprint('upload', __name__, url_prefix='/api/upload')
media_bp = Blueprint('media', __name__, url_prefix='/uploads')


@upload_bp.route('', methods=['POST'])
@admin_required
def upload_image():
    """Store a student or teacher photo"""
    folder = request.form.get('folder', '')
    if folder not in current_app.config['UPLOAD_FOLDERS']:
        return error_response(
            f"Invalid folder. Allowed: {', '.join(current_app.config['UPLOAD_FOLDERS'])}", 400
        )

    try:
        stored = get_services().media.save_image(request.files.get('file'), folder)
    except ValidationError as e:
        return error_response(str(e), 400)

    return create_response(True, 'File uploaded', {
        'url': stored['url'],
        'filename': stored['filename'],
        'width': stored['width'],
        'height': stored['height'],
    }, 201)


@upload_bp.route('', methods=['DELETE'])
@admin_required
def delete_image():
    url = request.args.get('url', '')
    if not url:
        return error_response('url is required', 400)

    media = get_services().media
    if not media.path_for(url):
        return error_response('Invalid file url', 400)
    if not media.delete(url):
        return error_response('File not found', 404)
    return create_response(True, 'File deleted')


@media_bp.route('/<path:filename>', methods=['GET'])
def serve_upload(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)
