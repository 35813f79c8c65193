from .core import create_app
from .config import Settings, load_settings
