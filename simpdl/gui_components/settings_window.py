"""
Defines the Toplevel window for the network settings.
"""

import tkinter as tk
from tkinter import ttk, messagebox
import logging

from ..controller import AppController


class SettingsWindow(tk.Toplevel):
    """A Toplevel window for the download proxy and yt-dlp source URL."""

    def __init__(self, master: tk.Tk, app_controller: AppController):
        """
        Initializes the Settings window.

        Args:
            master: The parent window.
            app_controller: The central application controller.
        """
        super().__init__(master)
        self.app_controller = app_controller
        self.logger = logging.getLogger(__name__)

        self.title("Settings")
        self.geometry("520x220")
        self.resizable(False, False)
        self.transient(master)

        self._create_widgets()
        self.protocol("WM_DELETE_WINDOW", self.destroy)

    def _create_widgets(self):
        """Creates and lays out all widgets for the settings window."""
        settings = self.app_controller.settings
        settings_frame = ttk.Frame(self, padding="10"); settings_frame.pack(fill=tk.BOTH, expand=True); settings_frame.columnconfigure(1, weight=1)

        self.proxy_var = tk.StringVar(value=settings.download_proxy)
        ttk.Label(settings_frame, text="Download Proxy:").grid(row=0, column=0, padx=5, pady=5, sticky=tk.W)
        ttk.Entry(settings_frame, textvariable=self.proxy_var).grid(row=0, column=1, padx=5, pady=5, sticky=tk.EW)
        ttk.Label(settings_frame, text="Used to download and update yt-dlp, e.g. http://127.0.0.1:7890",
                  font=("TkDefaultFont", 8, "italic")).grid(row=1, column=1, sticky=tk.W, padx=5)

        self.url_var = tk.StringVar(value=settings.yt_dlp_url)
        ttk.Label(settings_frame, text="yt-dlp Download URL:").grid(row=2, column=0, padx=5, pady=5, sticky=tk.W)
        ttk.Entry(settings_frame, textvariable=self.url_var).grid(row=2, column=1, padx=5, pady=5, sticky=tk.EW)
        ttk.Label(settings_frame, text="Leave empty to use the latest GitHub release.",
                  font=("TkDefaultFont", 8, "italic")).grid(row=3, column=1, sticky=tk.W, padx=5)

        tool = self.app_controller.tool
        ttk.Label(settings_frame, text="yt-dlp:").grid(row=4, column=0, padx=5, pady=(15, 5), sticky=tk.W)
        ttk.Label(settings_frame, text=f"{tool.version} ({tool.path})" if tool else "Not found",
                  wraplength=360).grid(row=4, column=1, padx=5, pady=(15, 5), sticky=tk.W)

        buttons_frame = ttk.Frame(settings_frame)
        buttons_frame.grid(row=5, column=0, columnspan=2, pady=15, sticky=tk.E)
        ttk.Button(buttons_frame, text="Save", command=self._save_and_close).pack(side=tk.LEFT, padx=5)
        ttk.Button(buttons_frame, text="Cancel", command=self.destroy).pack(side=tk.LEFT)

    def _save_and_close(self):
        """Validates changed settings, saves them, and closes the window."""
        settings = self.app_controller.settings
        for setter, old, new in ((self.app_controller.set_download_proxy, settings.download_proxy, self.proxy_var.get()),
                                 (self.app_controller.set_yt_dlp_url, settings.yt_dlp_url, self.url_var.get())):
            if new.strip() == old:
                continue
            success, message = setter(new)
            if not success:
                messagebox.showerror("Validation Error", message, parent=self)
                return
        self.logger.info("Network settings saved.")
        self.destroy()
