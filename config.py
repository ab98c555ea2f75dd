"""
SnapNotes Configuration
Supports AWS Parameter Store for production secrets
"""
import os
from functools import lru_cache

try:
    import boto3
except ImportError:
    boto3 = None


def get_parameter(name: str, default: str = "") -> str:
    """Get parameter from AWS Parameter Store or environment"""
    # Environment variable takes precedence
    env_key = name.upper().replace("-", "_").replace("/", "_")
    if env_key in os.environ:
        return os.environ[env_key]

    # Try AWS Parameter Store in production
    if boto3 and os.environ.get("USE_PARAMETER_STORE"):
        try:
            ssm = boto3.client("ssm", region_name=os.environ.get("AWS_REGION", "us-west-2"))
            path = os.environ.get("PARAMETER_STORE_PATH", "/snapnotes/prod/")
            response = ssm.get_parameter(Name=f"{path}{name}", WithDecryption=True)
            return response["Parameter"]["Value"]
        except Exception:
            pass

    return default


class Config:
    """Base configuration"""
    # Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-in-production")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # File uploads
    MAX_CONTENT_LENGTH = 20 * 1024 * 1024  # 20MB

    # OCR
    OCR_LANGUAGE = os.environ.get("OCR_LANGUAGE", "eng")
    TESSERACT_CMD = os.environ.get("TESSERACT_CMD", "")

    # Generation service
    GENERATION_PROVIDER = os.environ.get("GENERATION_PROVIDER", "gemini")
    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash-exp")
    GEMINI_API_BASE = os.environ.get(
        "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta/models"
    )
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4.1")
    GENERATION_TIMEOUT = int(os.environ.get("GENERATION_TIMEOUT", "60"))

    # Remote study tools endpoint used by RemoteStudyTools
    STUDY_TOOLS_URL = os.environ.get("STUDY_TOOLS_URL", "http://localhost:5000/ai-study-tools")

    # Camera
    CAMERA_INDEX_USER = int(os.environ.get("CAMERA_INDEX_USER", "0"))
    CAMERA_INDEX_ENVIRONMENT = int(os.environ.get("CAMERA_INDEX_ENVIRONMENT", "1"))
    CAMERA_FRAME_WIDTH = 1920
    CAMERA_FRAME_HEIGHT = 1080

    # Export
    EXPORT_PREFIX = os.environ.get("EXPORT_PREFIX", "extracted-text")

    # App Version
    APP_VERSION = os.environ.get("APP_VERSION", "2026.10")
    BUILD_TIME = os.environ.get("BUILD_TIME", "")
    GIT_COMMIT = os.environ.get("GIT_COMMIT", "")


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Override with Parameter Store in production
    SECRET_KEY = get_parameter("secret-key", Config.SECRET_KEY)
    GEMINI_API_KEY = get_parameter("gemini-api-key", Config.GEMINI_API_KEY)
    OPENAI_API_KEY = get_parameter("openai-api-key", Config.OPENAI_API_KEY)


class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = True
    TESTING = True
    GEMINI_API_KEY = "test-gemini-key"
    GENERATION_PROVIDER = "gemini"
    TESSERACT_CMD = ""


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}


@lru_cache()
def get_config(env: str = None):
    """Get configuration by environment name"""
    env = env or os.environ.get("FLASK_ENV", "development")
    return config.get(env, DevelopmentConfig)
