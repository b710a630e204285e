#!/usr/bin/env python3

# <~~~~~~~~~~>
#   GSIO  AI
# <~~~~~~~~~~>

import asyncio
import sys

from rich.live import Live

from gsio.app import ChatApp
from gsio.backend import ChatBackend
from gsio.config import load_config, resolve_settings
from gsio.globals import (
    CONSOLE,
    init_logger,
    log_exception,
    setup_keyring_backend,
    spawn_error_panel,
    spinner_constructor,
)


def build_app() -> ChatApp:
    """Loads configuration once and builds the backend and app from it"""
    config = load_config()
    settings = resolve_settings(config)
    return ChatApp(settings, ChatBackend(settings))


def main():
    try:
        # Start a spinner, mostly for cold starts
        with Live(
            spinner_constructor("Launching gsio-ai..."),
            refresh_per_second=8,
            console=CONSOLE,
        ):
            init_logger()
            setup_keyring_backend()
            app = build_app()
        CONSOLE.clear()
        asyncio.run(app.run())
    except (KeyboardInterrupt, EOFError):
        CONSOLE.print("[yellow]✨ Farewell![/yellow]\n")
    except Exception as e:
        log_exception(e, "Critical startup error")
        spawn_error_panel("CRITICAL ERROR", f"{e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
