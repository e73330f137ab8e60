"""
Centralized configuration
"""
import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Setup debug logger for configuration
_config_logger = logging.getLogger('config')

# Config directory is the current working directory
_env_file = Path.cwd() / '.env'
_dotenv_result = load_dotenv(_env_file)

# LLM Provider configuration
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'gemini')  # 'gemini', 'deepseek', 'openrouter' or 'openai'
DEFAULT_MODEL = os.getenv('DEFAULT_MODEL', 'gemini-2.5-flash')
GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
DEEPSEEK_API_KEY = os.getenv('DEEPSEEK_API_KEY', '')
OPENROUTER_API_KEY = os.getenv('OPENROUTER_API_KEY', '')
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
# Base URL of a self-hosted or third-party OpenAI-compatible server (without /v1/...)
OPENAI_API_ENDPOINT = os.getenv('OPENAI_API_ENDPOINT', '')
# Comma-separated OpenRouter upstream providers, e.g. "DeepInfra,Together"
OPENROUTER_MODEL_PROVIDERS = os.getenv('OPENROUTER_MODEL_PROVIDERS', '')

# Upstream endpoints
DEEPSEEK_API_URL = 'https://api.deepseek.com/v1/chat/completions'
OPENROUTER_API_URL = 'https://openrouter.ai/api/v1/chat/completions'
OPENROUTER_REFERER = 'https://github.com/lingua-scripter/lingua-scripter'
OPENROUTER_TITLE = 'Lingua Scripter'

# Generation defaults
DEFAULT_TEMPERATURE = float(os.getenv('DEFAULT_TEMPERATURE', '0.5'))
OPENAI_DEFAULT_TEMPERATURE = 0.7
DEFAULT_SOURCE_LANGUAGE = os.getenv('DEFAULT_SOURCE_LANGUAGE', 'Auto-detect')
DEFAULT_TARGET_LANGUAGE = os.getenv('DEFAULT_TARGET_LANGUAGE', 'English')

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are an expert translator specializing in webnovels. First, detect the language of the "
    "provided text, then translate it into fluent, natural {{targetLanguage}}. Your primary goal is "
    "to preserve the original tone and narrative style. When a glossary is provided, you MUST adhere "
    "to it strictly for the specified terms. You may also be provided with Character Information for "
    "context (including their original and translated names); use this to ensure consistent character "
    "details (like names and pronouns) in your translation."
)

# Batch translation
BATCH_SIZE = int(os.getenv('BATCH_SIZE', '10'))
AUTO_CHARACTER_DETECTION = os.getenv('AUTO_CHARACTER_DETECTION', 'true').lower() == 'true'

# Only the connect phase is bounded; long generations run until they finish or are cancelled
CONNECT_TIMEOUT = float(os.getenv('CONNECT_TIMEOUT', '30'))

# Languages written without whitespace word separation (glossary matching skips \b)
NO_BOUNDARY_LANGUAGES = ['Japanese', 'Chinese (Simplified)', 'Chinese (Traditional)', 'Korean']
AUTO_DETECT_LANGUAGE = 'Auto-detect'

# Storage
DATA_DIR = os.getenv('DATA_DIR', 'data')

# Server configuration
HOST = os.getenv('HOST', '127.0.0.1')
PORT = int(os.getenv('PORT', '5000'))

DEBUG_MODE = os.getenv('DEBUG_MODE', 'false').lower() == 'true'


def _mask(value: str) -> str:
    return '***' + value[-4:] if value else '(not set)'


if DEBUG_MODE:
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    _config_logger.setLevel(logging.DEBUG)
    _config_logger.debug("=" * 60)
    _config_logger.debug("LOADED CONFIGURATION VALUES:")
    _config_logger.debug("=" * 60)
    _config_logger.debug(f"   .env loaded: {_dotenv_result} ({_env_file.absolute()})")
    _config_logger.debug(f"   LLM_PROVIDER: {LLM_PROVIDER}")
    _config_logger.debug(f"   DEFAULT_MODEL: {DEFAULT_MODEL}")
    _config_logger.debug(f"   GEMINI_API_KEY: {_mask(GEMINI_API_KEY)}")
    _config_logger.debug(f"   DEEPSEEK_API_KEY: {_mask(DEEPSEEK_API_KEY)}")
    _config_logger.debug(f"   OPENROUTER_API_KEY: {_mask(OPENROUTER_API_KEY)}")
    _config_logger.debug(f"   OPENAI_API_KEY: {_mask(OPENAI_API_KEY)}")
    _config_logger.debug(f"   OPENAI_API_ENDPOINT: {OPENAI_API_ENDPOINT or '(not set)'}")
    _config_logger.debug(f"   DEFAULT_TARGET_LANGUAGE: {DEFAULT_TARGET_LANGUAGE}")
    _config_logger.debug(f"   BATCH_SIZE: {BATCH_SIZE}")
    _config_logger.debug(f"   DATA_DIR: {DATA_DIR}")
    _config_logger.debug(f"   HOST:PORT: {HOST}:{PORT}")
    _config_logger.debug("=" * 60)
