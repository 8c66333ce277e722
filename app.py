"""
School Administration System - Main Application

Entry point for the development server. Configuration is taken from the
FLASK_ENV environment variable (development, testing, production).
"""

import logging
import os

from school_admin import create_app

app = create_app()
logger = logging.getLogger(__name__)

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Starting development server on port {port}")
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=port)
