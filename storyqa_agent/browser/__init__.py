from .config import DEFAULT_CONFIG
from .driver import BrowserDriver
from .session import BrowserSession, BrowserSessionManager
from .ui_driver import PlaywrightUIDriver, UIDriver

__all__ = ["DEFAULT_CONFIG", "BrowserDriver", "BrowserSession", "BrowserSessionManager", "PlaywrightUIDriver", "UIDriver"]
