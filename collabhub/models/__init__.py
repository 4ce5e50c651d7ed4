# Models package
# Import all models here for convenience

from collabhub.models.user import User, Notification
from collabhub.models.chat import Chat, ChatParticipant, Message, ReadReceipt
from collabhub.models.code import CodeSession, SessionParticipant, SessionInvite

__all__ = [
    'User', 'Notification',
    'Chat', 'ChatParticipant', 'Message', 'ReadReceipt',
    'CodeSession', 'SessionParticipant', 'SessionInvite'
]
