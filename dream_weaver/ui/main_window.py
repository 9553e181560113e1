"""
Main application window using customtkinter
"""

from __future__ import annotations

import logging
import queue
import threading

import customtkinter as ctk

from ..errors import DreamWeaverError, InvalidTransition
from ..models import DreamEntry, WorkflowSnapshot, WorkflowState
from .views import (
    ACCENT,
    ACCENT_HOVER,
    MUTED,
    DreamView,
    ErrorView,
    ImageCache,
    JournalView,
    LoadingView,
    RecordingView,
)

EVENT_POLL_MS = 250

logger = logging.getLogger(__name__)


class MainWindow(ctk.CTk):
    """Main Dream Weaver window"""

    def __init__(self, app_controller):
        super().__init__()

        self.app = app_controller
        self.config = app_controller.config
        self.workflow = app_controller.workflow

        # Snapshots and tray requests arrive from other threads
        self.events: queue.Queue = queue.Queue()
        self.images = ImageCache()
        self.view = None
        self._view_key = None

        # Window setup
        self.title("Dream Weaver AI")
        width = self.config.get('window_width', 1100)
        height = self.config.get('window_height', 820)
        self.geometry(f"{width}x{height}")

        # Set theme
        ctk.set_appearance_mode(self.config.get('appearance_mode', 'dark'))
        ctk.set_default_color_theme("blue")

        self._create_ui()

        self._unsubscribe = self.workflow.subscribe(
            lambda snapshot: self.events.put(("snapshot", snapshot))
        )
        self._render(self.workflow.snapshot())
        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self.after(EVENT_POLL_MS, self._drain_events)

    def _create_ui(self):
        """Create the main UI layout"""
        # Top bar
        self.top_bar = ctk.CTkFrame(self, height=60, corner_radius=0)
        self.top_bar.pack(fill="x", padx=0, pady=0)

        title_box = ctk.CTkFrame(self.top_bar, fg_color="transparent")
        title_box.pack(side="left", padx=20, pady=8)
        ctk.CTkLabel(
            title_box,
            text="✨ Dream Weaver AI",
            font=ctk.CTkFont(size=24, weight="bold"),
            text_color=ACCENT_HOVER,
        ).pack(anchor="w")
        ctk.CTkLabel(
            title_box,
            text="Record, visualize, and understand your dreams.",
            font=ctk.CTkFont(size=12),
            text_color=MUTED,
        ).pack(anchor="w")

        self.settings_button = ctk.CTkButton(
            self.top_bar,
            text="⚙️  Settings",
            command=self._show_settings,
            width=120,
            height=35,
            fg_color="gray"
        )
        self.settings_button.pack(side="right", padx=20)

        self.status_label = ctk.CTkLabel(self.top_bar, text="", font=ctk.CTkFont(size=14))
        self.status_label.pack(side="right", padx=10)

        # Main content area
        self.content = ctk.CTkFrame(self)
        self.content.pack(fill="both", expand=True, padx=20, pady=10)

    # Event pump

    def _drain_events(self):
        """Apply queued snapshots and tray requests on the Tk thread"""
        latest = None
        try:
            while True:
                kind, payload = self.events.get_nowait()
                if kind == "snapshot":
                    latest = payload
                elif kind == "toggle_recording":
                    self._toggle_recording()
                elif kind == "show":
                    self._show()
                elif kind == "settings":
                    self._show()
                    self._show_settings()
                elif kind == "quit":
                    self._on_close()
                    return
        except queue.Empty:
            pass
        if latest is not None:
            self._render(latest)
        self.after(EVENT_POLL_MS, self._drain_events)

    def _render(self, snapshot: WorkflowSnapshot):
        """Swap the content view when the state changes, otherwise update it in place"""
        self._update_status(snapshot.state)

        dream_id = snapshot.active_dream.id if snapshot.active_dream else None
        key = (snapshot.state, dream_id, snapshot.error_message)
        if key != self._view_key:
            if self.view is not None:
                self.view.destroy()
            self.view = self._build_view(snapshot)
            self.view.pack(fill="both", expand=True)
            self._view_key = key
        self.view.update_snapshot(snapshot)

    def _build_view(self, snapshot: WorkflowSnapshot):
        state = snapshot.state
        if state is WorkflowState.RECORDING:
            return RecordingView(self.content, on_stop=self._stop_recording)
        if state is WorkflowState.ANALYZING:
            return LoadingView(self.content)
        if state is WorkflowState.COMPLETE and snapshot.active_dream is not None:
            return DreamView(
                self.content,
                self.workflow,
                self.images,
                snapshot.active_dream,
                on_send=self._send_message,
                on_save=self._save_dream,
            )
        if state is WorkflowState.ERROR:
            return ErrorView(
                self.content,
                snapshot.error_message or "Something went wrong.",
                on_retry=self.workflow.retry,
            )
        return JournalView(
            self.content,
            self.workflow,
            self.images,
            on_record=self._start_recording,
            on_open=self._open_dream,
        )

    def _update_status(self, state: WorkflowState):
        """Update recording status display"""
        if state is WorkflowState.RECORDING:
            self.status_label.configure(text="🔴 Recording", text_color="#f87171")
        elif state is WorkflowState.ANALYZING:
            self.status_label.configure(text="⏳ Analyzing", text_color=ACCENT_HOVER)
        else:
            self.status_label.configure(text="", text_color=MUTED)

    # Actions

    def _run_in_background(self, action, *args):
        """Run a blocking workflow call off the Tk thread"""
        def worker():
            try:
                action(*args)
            except InvalidTransition as e:
                logger.info("Ignored %s: %s", action.__name__, e)
            except Exception:  # noqa: BLE001
                logger.exception("%s failed", action.__name__)

        threading.Thread(
            target=worker, name=f"dream-weaver-{action.__name__}", daemon=True
        ).start()

    def _start_recording(self):
        self._run_in_background(self.workflow.start_recording)

    def _stop_recording(self):
        self._run_in_background(self.workflow.stop_recording)

    def _toggle_recording(self):
        state = self.workflow.state
        if state is WorkflowState.RECORDING:
            self._stop_recording()
        elif state is WorkflowState.IDLE:
            self._start_recording()

    def _send_message(self, text: str):
        self._run_in_background(self.workflow.send_message, text)

    def _open_dream(self, entry: DreamEntry):
        try:
            self.workflow.view_dream(entry)
        except InvalidTransition as e:
            logger.info("Cannot open dream %s: %s", entry.id, e)

    def _save_dream(self):
        try:
            self.workflow.save_dream()
        except DreamWeaverError as e:
            logger.error("Error saving dream: %s", e)

    # Window management

    def _show(self):
        self.deiconify()
        self.lift()
        self.focus_force()

    def _show_settings(self):
        """Show settings dialog"""
        SettingsDialog(self, self.config, self.app)

    def _on_close(self):
        self._unsubscribe()
        if self.app.tray_icon:
            self.app.tray_icon.stop()
        self.quit()


class SettingsDialog(ctk.CTkToplevel):
    """Settings dialog window"""

    def __init__(self, parent, config, app):
        super().__init__(parent)

        self.config = config
        self.app = app

        self.title("Dream Weaver Settings")
        self.geometry("600x520")

        self._create_ui()

    def _create_ui(self):
        """Create settings UI"""
        ctk.CTkLabel(
            self,
            text="⚙️  Settings",
            font=ctk.CTkFont(size=24, weight="bold")
        ).pack(pady=20)

        scroll_frame = ctk.CTkScrollableFrame(self)
        scroll_frame.pack(fill="both", expand=True, padx=20, pady=10)

        # Gemini section
        provider_frame = ctk.CTkFrame(scroll_frame)
        provider_frame.pack(fill="x", pady=10)

        ctk.CTkLabel(
            provider_frame,
            text="Google Gemini",
            font=ctk.CTkFont(size=18, weight="bold")
        ).pack(anchor="w", padx=15, pady=10)

        self.api_key_entry = self._labeled_entry(
            provider_frame, "Gemini API Key:", self.config.get('gemini_api_key', ''),
            placeholder="Enter your Gemini API key", show="*",
        )
        self.text_model_entry = self._labeled_entry(
            provider_frame, "Interpretation model:", self.config.get('text_model', ''),
        )
        self.image_model_entry = self._labeled_entry(
            provider_frame, "Image model:", self.config.get('image_model', ''),
        )

        self.history_var = ctk.BooleanVar(value=bool(self.config.get('chat_transmit_history', False)))
        ctk.CTkCheckBox(
            provider_frame,
            text="Send earlier chat turns with each follow-up question",
            variable=self.history_var,
        ).pack(anchor="w", padx=15, pady=(5, 15))

        # Appearance
        appearance_frame = ctk.CTkFrame(scroll_frame)
        appearance_frame.pack(fill="x", pady=10)

        ctk.CTkLabel(
            appearance_frame,
            text="Appearance",
            font=ctk.CTkFont(size=18, weight="bold")
        ).pack(anchor="w", padx=15, pady=10)

        self.appearance_var = ctk.StringVar(value=self.config.get('appearance_mode', 'dark'))
        ctk.CTkOptionMenu(
            appearance_frame,
            values=["dark", "light", "system"],
            variable=self.appearance_var,
        ).pack(anchor="w", padx=15, pady=(0, 15))

        ctk.CTkButton(
            self,
            text="💾 Save Settings",
            command=self._save_settings,
            width=200,
            height=40,
            fg_color=ACCENT,
            hover_color=ACCENT_HOVER,
            font=ctk.CTkFont(size=16, weight="bold")
        ).pack(pady=20)

    def _labeled_entry(self, parent, label, value, placeholder="", show=None):
        ctk.CTkLabel(parent, text=label, font=ctk.CTkFont(size=14)).pack(anchor="w", padx=15, pady=(5, 0))
        entry = ctk.CTkEntry(parent, width=400, show=show, placeholder_text=placeholder)
        entry.pack(fill="x", padx=15, pady=5)
        if value:
            entry.insert(0, value)
        return entry

    def _save_settings(self):
        """Save settings and close dialog"""
        api_key = self.api_key_entry.get().strip()
        if api_key:
            self.config.set('gemini_api_key', api_key)

        text_model = self.text_model_entry.get().strip()
        if text_model:
            self.config.set('text_model', text_model)
        image_model = self.image_model_entry.get().strip()
        if image_model:
            self.config.set('image_model', image_model)

        self.config.set('chat_transmit_history', bool(self.history_var.get()))

        appearance = self.appearance_var.get()
        self.config.set('appearance_mode', appearance)
        ctk.set_appearance_mode(appearance)

        # Reinitialize LLM provider
        self.app.init_llm_provider()

        self.destroy()
