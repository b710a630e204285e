"""Global functions and variables, used across various modules."""

import getpass
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

import keyring
from keyring import get_password
from keyring.backends import null
from platformdirs import user_data_dir
from rich.console import Console
from rich.panel import Panel
from rich.spinner import Spinner
from rich.text import Text

# Default directories and system details
APP_DIR = user_data_dir("GsioAI")
LOG_DIR = os.path.join(APP_DIR, "logs")
CONFIG_FILE_NAME = ".gsio-config.json"
KEYRING_SERVICE = "GsioAI"
USER_NAME = getpass.getuser()

# Terminal integration
CONSOLE = Console()


def init_logger():
    """Initializes the logging system."""
    os.makedirs(LOG_DIR, exist_ok=True)
    date_str = datetime.now().strftime("%Y%m%d")
    # Output example: gsio_20261019.log
    log_path = os.path.join(LOG_DIR, f"gsio_{date_str}.log")
    # Max of 3 backups, max size of 1MB
    handler = RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler],
    )


def log_exception(e: BaseException, context: str = ""):
    """Creates a full formatted traceback string and writes it to a log file"""
    import traceback

    # Format the traceback (exception class, exception instance, traceback object)
    tb = "".join(traceback.format_exception(type(e), e, e.__traceback__))
    msg = f"{context}\n{tb}" if context else tb
    logging.error(msg)


def setup_keyring_backend():
    """Safely detects a keyring backend."""
    try:
        keyring.get_keyring()
    except Exception as e:
        keyring.set_keyring(null.Keyring())
        logging.error(
            f"Keyring backend failed. Falling back to NullBackend. Error: {e}"
        )


def retrieve_key(fallback: str = "dummy-key") -> str:
    """
    Attempts to retrieve a stored API key.\n
    Prio: OPENAI_API_KEY env variable -> OS keyring entry -> fallback
    """
    api_key = os.getenv("OPENAI_API_KEY", "").strip()
    if not api_key:
        try:
            api_key = get_password(KEYRING_SERVICE, USER_NAME) or ""
        except Exception as e:
            logging.warning(f"Keyring lookup failed: {e}")
    return api_key or fallback


def spinner_constructor(content: str) -> Spinner:
    return Spinner(
        "moon",
        text=f"[bold medium_orchid]{content}[/bold medium_orchid]",
    )


def spawn_error_panel(error: str, exception: str):
    """Error panel template, used by main() for fatal errors"""
    CONSOLE.print(
        Panel(
            exception,
            title=Text(f"❌ {error}", style="bold red"),
            title_align="left",
            border_style="red",
            expand=False,
        )
    )
    CONSOLE.print()
