# Routes package

from collabhub.routes.auth import auth_bp
from collabhub.routes.main import main_bp
from collabhub.routes.chats import chats_bp
from collabhub.routes.code_sessions import code_bp

__all__ = ['auth_bp', 'main_bp', 'chats_bp', 'code_bp']
