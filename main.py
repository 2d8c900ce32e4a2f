"""
Main entry point for the yt-dlp-simpgo application.

This script bootstraps the configuration files, sets up logging, creates the
main Tkinter window, and drives the asyncio loop from the Tk main loop.
"""

import os
import tkinter as tk
import queue
import sys
import logging
import asyncio
from types import TracebackType
from typing import Type

from simpdl.gui import SimpDlApp
from simpdl.logging_config import setup_logging
from simpdl.config import ConfigManager, Settings
from simpdl.constants import APP_PATH, DEFAULT_OUTPUT_DIR
from simpdl.controller import AppController
from simpdl.exceptions import ConfigError

def handle_exception(exc_type: Type[BaseException], exc_value: BaseException, exc_traceback: TracebackType):
    """Logs unhandled exceptions from synchronous code."""
    logger = logging.getLogger()
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    logger.critical("Unhandled exception:", exc_info=(exc_type, exc_value, exc_traceback))

def handle_async_exception(loop, context):
    """Logs unhandled exceptions from asyncio tasks."""
    logger = logging.getLogger()
    msg = context.get("exception", context["message"])
    logger.critical(f"Caught exception from asyncio task: {msg}")


if __name__ == "__main__":
    # 1. Relative paths (settings, output folder) are relative to the program folder.
    os.chdir(APP_PATH)

    # 2. Logging first, so bootstrap problems end up in latest.log
    gui_queue = queue.Queue()
    setup_logging(gui_queue)
    sys.excepthook = handle_exception

    # 3. Make sure the settings, yt-dlp.conf and the output folder exist
    config_manager = ConfigManager()
    try:
        settings, _ = config_manager.ensure_defaults(DEFAULT_OUTPUT_DIR)
    except ConfigError as e:
        logging.error(f"Could not prepare configuration, continuing with defaults: {e}")
        settings = Settings(output_dir=DEFAULT_OUTPUT_DIR)

    # 4. Create the Controller, which holds all business logic
    controller = AppController(config_manager, settings)

    # 5. Create and run the Tkinter application (the View)
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    loop.set_exception_handler(handle_async_exception)

    root = tk.Tk()
    app = SimpDlApp(root, gui_queue, controller, loop)
    try:
        root.mainloop()
    except KeyboardInterrupt:
        logging.info("Application interrupted by user.")
    finally:
        loop.close()
