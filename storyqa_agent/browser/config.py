DEFAULT_CONFIG = {
    "browser_type": "chromium",
    "headless": True,
    "viewport": {"width": 1280, "height": 720},
    "language": "en-US",
    "ignore_https_errors": False,
    "screenshot_dir": "./screenshots",
}
