# Flask extensions initialization
# Helps avoid circular imports by initializing extensions without app context

from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_login import LoginManager

db = SQLAlchemy()
# async_mode and cors_allowed_origins come from app config in create_app
socketio = SocketIO(
    ping_timeout=60,
    ping_interval=25,
    manage_session=False,
    path='socket.io',
    engineio_logger=False,
    logger=False
)
login_manager = LoginManager()
