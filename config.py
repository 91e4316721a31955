# config.py
import os

class Config:
    # 默认使用本地 SQLite 文件，可通过 DB_URL 覆盖，例如 sqlite:////tmp/visionspeak.db
    SQLALCHEMY_DATABASE_URI = os.getenv('DB_URL', 'sqlite:///visionspeak.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 截图和配图以 data URI 形式提交，体积较大
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024

    # Gemini 配置，没有 Key 时 AI 接口直接返回 502
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    TEXT_MODEL = "gemini-3-flash-preview"
    TTS_MODEL = "gemini-2.5-flash-preview-tts"
    IMAGE_MODEL = "gemini-2.5-flash-image"
    AI_TIMEOUT = int(os.getenv("AI_TIMEOUT", "60"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {'check_same_thread': False}
    }
    GEMINI_API_KEY = ""
