"""Base configuration shared by every environment."""
import os
from datetime import timedelta

class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False
    
    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=7)
    JWT_ALGORITHM = 'HS256'
    
    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]
    
    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"
    
    # Event queue (best-effort side effects)
    REDIS_URL = os.environ.get('REDIS_URL')
    EVENT_QUEUE_BACKEND = os.environ.get('EVENT_QUEUE_BACKEND', 'memory')  # memory | redis
    EVENT_QUEUE_EAGER = False
    EVENT_QUEUE_NAME = 'attendance:events'
    EVENT_MAX_ATTEMPTS = 5
    
    # Sessions
    SESSION_TTL_MINUTES = 180
    DEFAULT_LATE_AFTER_MINUTES = 10
    DEFAULT_QR_REFRESH_SECONDS = 30
    DEFAULT_GPS_RADIUS_METERS = 30
    
    # Fraud heuristics
    RAPID_SCAN_WINDOW_SECONDS = 10
    GPS_PROXIMITY_METERS = 2
    
    # Identity
    FACE_MATCH_THRESHOLD = 0.55
    
    # Summaries
    DEFAULT_MIN_ATTENDANCE = 75
    
    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = 'logs/app.log'
