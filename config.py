import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


class Config:
    # Environment
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///intake.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PERMANENT_SESSION_LIFETIME = timedelta(minutes=30)

    # Public base URL used to build client form links (<APP_URL>/f/<token>)
    APP_URL = os.getenv('APP_URL', 'http://localhost:5005')

    # Email settings
    EMAIL_ENABLED = os.getenv('EMAIL_ENABLED', 'True').lower() == 'true'
    SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY')
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_SENDER_EMAIL = os.getenv('MAIL_SENDER_EMAIL', 'noreply@example.com')
    MAIL_SENDER_NAME = os.getenv('MAIL_SENDER_NAME', 'Client Intake')
    EMAIL_MAX_RETRIES = int(os.getenv('EMAIL_MAX_RETRIES', 3))
    EMAIL_RETRY_DELAY_SECONDS = float(os.getenv('EMAIL_RETRY_DELAY_SECONDS', 1))


class TestingConfig(Config):
    TESTING = True
    FLASK_ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    APP_URL = 'http://forms.test'
    EMAIL_ENABLED = False
    EMAIL_MAX_RETRIES = 1
    EMAIL_RETRY_DELAY_SECONDS = 0
