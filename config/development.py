"""Development configuration."""
import os

from .base import Config

class DevelopmentConfig(Config):
    """Development configuration class."""
    
    DEBUG = True
    TESTING = False
    SQLALCHEMY_DATABASE_URI = os.getenv('DEV_DATABASE_URL') or 'sqlite:///attendance_dev.db'
    SQLALCHEMY_ECHO = False
    
    # Side effects run in a worker thread next to the dev server
    EVENT_QUEUE_BACKEND = os.getenv('EVENT_QUEUE_BACKEND', 'memory')
    
    LOG_LEVEL = 'DEBUG'
