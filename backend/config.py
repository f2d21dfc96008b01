import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///pokechess.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', '3000'))
    SOCKETIO_NAMESPACE = '/ws'
    # Rooms whose key starts with this prefix are played against the computer
    COMPUTER_ROOM_PREFIX = os.environ.get('COMPUTER_ROOM_PREFIX', 'ai')
    # Reserved display name; never rated
    ANONYMOUS_NAME = 'Anonymous'
    SPECTATOR_LABEL = 'Spectator'
    # Pause before the computer answers (seconds)
    AI_MOVE_DELAY_SEC = float(os.environ.get('AI_MOVE_DELAY_SEC', '1.0'))
    # One line per taunt; missing file disables flavor text
    FLAVOR_TEXT_PATH = os.environ.get('FLAVOR_TEXT_PATH', 'trash_talk.txt')
    ELO_K_FACTOR = int(os.environ.get('ELO_K_FACTOR', '32'))
    LEADERBOARD_LIMIT = int(os.environ.get('LEADERBOARD_LIMIT', '20'))
