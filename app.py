"""
Library Attendance & Mail Service - Main Application

Entry point of the library service. It builds the Flask application from
the configuration selected by FLASK_ENV and serves the JSON API.

Features:
- Barcode scanning for library time-in / time-out
- Daily and filtered attendance listings with Excel/CSV export
- Student registration with printable QR ID cards
- Batched announcement email and library notices
"""

import logging
import os

from library_app import create_app

# Configure logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO'),
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)
logger = logging.getLogger(__name__)

app = create_app()

if __name__ == '__main__':
    logger.info(f"Starting library service on port {os.environ.get('PORT', 5000)}")

    # Run the application
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
