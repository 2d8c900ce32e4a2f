"""The main application window, handling the Tkinter GUI and event loop."""

import tkinter as tk
from tkinter import ttk, filedialog, messagebox, scrolledtext
import os
import sys
import queue
import logging
import asyncio
import subprocess
import webbrowser
from typing import Dict, Optional

from ._version import __version__
from .controller import AppController
from .logging_config import LOG_FORMAT
from .gui_components.settings_window import SettingsWindow


class SimpDlApp:
    """The main application class, handling the Tkinter GUI and event loop."""
    MAX_LOG_LINES = 2000

    def __init__(self, root: tk.Tk, gui_queue: queue.Queue, app_controller: AppController, loop: asyncio.AbstractEventLoop):
        """
        Initializes the main application GUI.

        Args:
            root: The root Tkinter window.
            gui_queue: The queue carrying log records for the log view.
            app_controller: The central application controller.
            loop: The asyncio event loop, driven from the Tk main loop.
        """
        self.root = root
        self.root.title(f"yt-dlp-simpgo {__version__}"); self.root.geometry("720x420")
        self.logger = logging.getLogger(__name__)

        self.gui_queue = gui_queue
        self.log_formatter = logging.Formatter(LOG_FORMAT)
        self.app_controller = app_controller
        self.loop = loop
        self.app_controller.set_view(self)

        self.settings_win: Optional[SettingsWindow] = None
        self.is_destroyed = False
        self.tool_ready = False

        self.create_widgets()

        self.root.protocol("WM_DELETE_WINDOW", self.on_closing)
        self.spawn(self.app_controller.run_startup_checks())
        self.set_status("Ready")
        self.root.after(50, self._run_async_loop)

    def spawn(self, coro):
        """Schedules a coroutine on the loop and logs it if it fails."""
        task = self.loop.create_task(coro)
        task.add_done_callback(self._handle_task_exception)
        return task

    def _handle_task_exception(self, task: asyncio.Task) -> None:
        try:
            task.result()
        except asyncio.CancelledError:
            pass
        except Exception:
            self.logger.exception(f"Exception in background task {task.get_name()}:")

    def _run_async_loop(self):
        """
        Drives the asyncio event loop and reschedules itself.
        This function is called periodically by the Tkinter main loop.
        """
        if self.is_destroyed:
            return
        self.loop.call_soon(self.loop.stop)
        self.loop.run_forever()
        self.process_log_queue()
        self.root.after(50, self._run_async_loop)

    def on_closing(self):
        if self.app_controller.is_downloading or self.app_controller.is_fetching:
            if not messagebox.askyesno("Confirm Exit", "A download is in progress. Exit anyway?"):
                return
        self.logger.info("Application closing.")
        self.is_destroyed = True
        self.root.destroy()

    def create_widgets(self):
        """Creates and lays out all the main GUI widgets."""
        main_frame = ttk.Frame(self.root, padding="10"); main_frame.pack(fill=tk.BOTH, expand=True)

        entry_row = ttk.Frame(main_frame); entry_row.pack(fill=tk.X)
        self.url_var = tk.StringVar()
        self.url_entry = ttk.Entry(entry_row, textvariable=self.url_var); self.url_entry.pack(side=tk.LEFT, fill=tk.X, expand=True, ipady=4)
        ttk.Button(entry_row, text="Clear", command=lambda: self.url_var.set("")).pack(side=tk.RIGHT, padx=(5, 0))

        button_row = ttk.Frame(main_frame); button_row.pack(fill=tk.X, pady=8)
        self.browse_button = ttk.Button(button_row, text="Set Download Folder", command=self.browse_output_path); self.browse_button.pack(side=tk.LEFT)
        ttk.Label(button_row, text="Download folder:").pack(side=tk.LEFT, padx=(8, 2))
        self.output_dir_var = tk.StringVar(value=self.app_controller.settings.output_dir)
        ttk.Button(button_row, textvariable=self.output_dir_var, command=self.open_output_folder).pack(side=tk.LEFT)
        ttk.Button(button_row, text="About", command=self.show_about).pack(side=tk.RIGHT)
        self.settings_button = ttk.Button(button_row, text="Settings", command=self.open_settings_window); self.settings_button.pack(side=tk.RIGHT, padx=5)
        self.download_button = ttk.Button(button_row, text="Download yt-dlp", command=self.on_download_clicked); self.download_button.pack(side=tk.RIGHT, padx=5)
        self.update_button = ttk.Button(button_row, text="Update yt-dlp", state='disabled', command=lambda: self.spawn(self.app_controller.update_yt_dlp())); self.update_button.pack(side=tk.RIGHT)

        self.log_text = scrolledtext.ScrolledText(main_frame, wrap=tk.WORD, state='disabled'); self.log_text.pack(fill=tk.BOTH, expand=True)
        status_bar_frame = ttk.Frame(self.root, relief=tk.SUNKEN); status_bar_frame.pack(side=tk.BOTTOM, fill=tk.X, padx=2, pady=2)
        self.status_label = ttk.Label(status_bar_frame, text="Ready"); self.status_label.pack(side=tk.LEFT, padx=5)

    def on_download_clicked(self):
        if self.tool_ready:
            self.spawn(self.app_controller.start_download(self.url_var.get()))
        else:
            self.spawn(self.app_controller.install_yt_dlp())

    # --- View interface used by AppController ---

    def set_status(self, message: str):
        if self.is_destroyed: return
        self.status_label.config(text=message)

    def set_output_dir(self, output_dir: str):
        self.output_dir_var.set(output_dir)

    def set_tool_ready(self, ready: bool):
        self.tool_ready = ready
        self.download_button.config(text="Start Download" if ready else "Download yt-dlp")
        self.update_button.config(state='normal' if ready else 'disabled')

    def set_busy(self, busy: bool):
        if self.is_destroyed: return
        state = 'disabled' if busy else 'normal'
        self.download_button.config(state=state)
        self.browse_button.config(state=state)
        self.update_button.config(state='disabled' if busy or not self.tool_ready else 'normal')

    def append_log(self, message: str):
        if self.is_destroyed: return
        self.log_text.config(state='normal')
        if self.log_text.index('end-1c') != '1.0':
            self.log_text.insert(tk.END, '\n')
        self.log_text.insert(tk.END, message)
        num_lines = int(self.log_text.index('end-1c').split('.')[0])
        if num_lines > self.MAX_LOG_LINES: self.log_text.delete('1.0', f'{num_lines - self.MAX_LOG_LINES + 1}.0')
        self.log_text.see(tk.END)
        self.log_text.config(state='disabled')

    def rewrite_last_log(self, message: str):
        if self.is_destroyed: return
        self.log_text.config(state='normal')
        self.log_text.delete('end-1c linestart', 'end-1c')
        self.log_text.insert(tk.END, message)
        self.log_text.see(tk.END)
        self.log_text.config(state='disabled')

    def _dialog(self, func, *args) -> asyncio.Future:
        """
        Shows a modal dialog from the Tk side and returns a future for its answer.

        Dialogs run their own Tk event loop, which keeps calling
        `_run_async_loop`; they must not be opened while the asyncio loop is running.
        """
        future = self.loop.create_future()

        def show():
            result = func(*args, parent=self.root)
            if not future.done():
                future.set_result(result)

        self.root.after(0, show)
        return future

    async def show_message(self, data: Dict[str, str]):
        handler = getattr(messagebox, f"show{data['type']}", messagebox.showinfo)
        await self._dialog(handler, data['title'], data['message'])

    async def show_update_dialog(self, new_version: str, release_url: str):
        text = (f"A new version is available!\n\nCurrent version: {__version__}\n"
                f"New version: {new_version}\n\nOpen the download page?")
        if await self._dialog(messagebox.askyesno, "Update Available", text):
            await asyncio.to_thread(webbrowser.open, release_url)

    # --- Actions ---

    def process_log_queue(self):
        """Processes log messages from the queue."""
        try:
            while True:
                record = self.gui_queue.get_nowait()
                self.append_log(self.log_formatter.format(record))
        except queue.Empty:
            pass

    def browse_output_path(self):
        path = filedialog.askdirectory(initialdir=str(self.app_controller.output_path), title="Select Download Folder", parent=self.root)
        if not path:
            return
        ok, message = self.app_controller.set_output_dir(path)
        if not ok:
            messagebox.showerror("Error", message, parent=self.root)

    def open_output_folder(self):
        path = self.app_controller.output_path
        try:
            if sys.platform == 'win32':
                os.startfile(str(path))  # type: ignore[attr-defined]
            elif sys.platform == 'darwin':
                subprocess.Popen(['open', str(path)])
            else:
                subprocess.Popen(['xdg-open', str(path)])
        except OSError as e:
            messagebox.showerror("Error", f"Failed to open folder:\n{e}", parent=self.root)

    def open_settings_window(self):
        if self.settings_win and self.settings_win.winfo_exists():
            self.settings_win.lift(); return
        self.settings_win = SettingsWindow(master=self.root, app_controller=self.app_controller)

    def show_about(self):
        messagebox.showinfo("About", self.app_controller.about_text(), parent=self.root)
