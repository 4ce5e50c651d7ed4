# Entry point for the CollabHub server

import logging
import os

from collabhub import create_app
from collabhub.extensions import socketio

app = create_app()
logger = logging.getLogger('collabhub')

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    logger.info("[SERVER STARTUP] Starting CollabHub on port %s", port)
    socketio.run(app, host='0.0.0.0', port=port, allow_unsafe_werkzeug=True, debug=False)
