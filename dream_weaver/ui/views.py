"""
Views rendered for each workflow state
"""

from __future__ import annotations

import io
import logging
from typing import Callable, Optional

import customtkinter as ctk
from PIL import Image

from ..formatting import (
    LOADING_INTERVAL_MS,
    decode_data_uri,
    format_created_at,
    interpretation_blocks,
    loading_message,
    tag_labels,
    transcript_preview,
)
from ..models import DreamEntry, Role, WorkflowSnapshot

ACCENT = "#6366f1"
ACCENT_HOVER = "#818cf8"
MUTED = "#94a3b8"
DANGER = "#dc2626"

logger = logging.getLogger(__name__)


class ImageCache:
    """Decoded dream images keyed by (entry id, size)"""

    def __init__(self):
        self._images: dict[tuple[str, int], ctk.CTkImage] = {}

    def get(self, entry: DreamEntry, size: int) -> Optional[ctk.CTkImage]:
        key = (entry.id, size)
        if key in self._images:
            return self._images[key]
        try:
            _, payload = decode_data_uri(entry.image_url)
            image = Image.open(io.BytesIO(payload))
            image.load()
        except (ValueError, OSError) as exc:
            logger.warning("Cannot decode image for dream %s: %s", entry.id, exc)
            return None
        image.thumbnail((size, size), Image.Resampling.LANCZOS)
        ctk_image = ctk.CTkImage(light_image=image, dark_image=image, size=image.size)
        self._images[key] = ctk_image
        return ctk_image


class JournalView(ctk.CTkFrame):
    """Idle state: searchable dream journal"""

    def __init__(self, master, workflow, images: ImageCache,
                 on_record: Callable[[], None], on_open: Callable[[DreamEntry], None]):
        super().__init__(master, fg_color="transparent")
        self.workflow = workflow
        self.images = images
        self.on_open = on_open

        bar = ctk.CTkFrame(self, fg_color="transparent")
        bar.pack(fill="x", padx=10, pady=(10, 16))

        self.search_var = ctk.StringVar(value="")
        self.search_var.trace_add("write", lambda *_: self._render_cards())
        ctk.CTkEntry(
            bar,
            textvariable=self.search_var,
            placeholder_text="Search by tag...",
            height=36,
        ).pack(side="left", fill="x", expand=True, padx=(0, 12))

        ctk.CTkButton(
            bar,
            text="🎙️  Record New Dream",
            command=on_record,
            height=36,
            fg_color=ACCENT,
            hover_color=ACCENT_HOVER,
            font=ctk.CTkFont(size=14, weight="bold"),
        ).pack(side="right")

        self.cards = ctk.CTkScrollableFrame(self, fg_color="transparent")
        self.cards.pack(fill="both", expand=True, padx=5, pady=5)
        for column in range(3):
            self.cards.grid_columnconfigure(column, weight=1, uniform="card")

        self._render_cards()

    def _render_cards(self):
        for widget in self.cards.winfo_children():
            widget.destroy()

        entries = self.workflow.filtered_journal(self.search_var.get())
        if not entries:
            empty = ctk.CTkFrame(self.cards, fg_color="transparent")
            empty.grid(row=0, column=0, columnspan=3, pady=80)
            ctk.CTkLabel(
                empty,
                text="Your Dream Journal is Empty" if not self.search_var.get().strip()
                else "No dreams match that tag",
                font=ctk.CTkFont(size=20, weight="bold"),
            ).pack()
            ctk.CTkLabel(
                empty,
                text="Press 'Record New Dream' to begin your journey.",
                text_color=MUTED,
            ).pack(pady=(8, 0))
            return

        for index, entry in enumerate(entries):
            self._create_card(entry).grid(
                row=index // 3, column=index % 3, sticky="nsew", padx=6, pady=6
            )

    def _create_card(self, entry: DreamEntry) -> ctk.CTkFrame:
        card = ctk.CTkFrame(self.cards, corner_radius=10, border_width=1, border_color="#334155")

        image = self.images.get(entry, 220)
        if image is not None:
            ctk.CTkLabel(card, text="", image=image).pack(padx=10, pady=(10, 4))

        ctk.CTkLabel(
            card,
            text=format_created_at(entry.created_at),
            font=ctk.CTkFont(size=12),
            text_color=MUTED,
        ).pack(anchor="w", padx=12)
        ctk.CTkLabel(
            card,
            text=transcript_preview(entry.transcript, limit=90),
            font=ctk.CTkFont(size=13, slant="italic"),
            wraplength=220,
            justify="left",
        ).pack(anchor="w", padx=12, pady=(4, 4))
        labels = tag_labels(entry.tags)
        if labels:
            ctk.CTkLabel(
                card,
                text="  ".join(labels),
                font=ctk.CTkFont(family="Courier", size=12),
                text_color=ACCENT_HOVER,
            ).pack(anchor="w", padx=12, pady=(0, 10))

        _bind_click(card, lambda _event: self.on_open(entry))
        return card

    def update_snapshot(self, snapshot: WorkflowSnapshot):
        pass


class RecordingView(ctk.CTkFrame):
    """Recording state: live transcript and stop button"""

    PLACEHOLDER = "Speak now, your dream is being heard..."

    def __init__(self, master, on_stop: Callable[[], None]):
        super().__init__(master, fg_color="transparent")
        self._pulse_on = True
        self._after_id = None

        self.header = ctk.CTkLabel(
            self, text="Recording...", font=ctk.CTkFont(size=26, weight="bold"), text_color=ACCENT_HOVER
        )
        self.header.pack(pady=(60, 20))

        self.transcript_label = ctk.CTkLabel(
            self, text=self.PLACEHOLDER, wraplength=640, justify="center", text_color=MUTED,
            font=ctk.CTkFont(size=15),
        )
        self.transcript_label.pack(padx=30, pady=(0, 30))

        self.stop_button = ctk.CTkButton(
            self,
            text="⏹️  Stop",
            command=self._stop,
            width=140,
            height=56,
            corner_radius=28,
            fg_color=DANGER,
            hover_color="#ef4444",
            font=ctk.CTkFont(size=16, weight="bold"),
        )
        self.stop_button.pack()
        self._on_stop = on_stop
        self._pulse()

    def _stop(self):
        self.stop_button.configure(state="disabled", text="Finishing last phrase...")
        self._on_stop()

    def _pulse(self):
        self._pulse_on = not self._pulse_on
        self.header.configure(text_color=ACCENT_HOVER if self._pulse_on else ACCENT)
        self._after_id = self.after(600, self._pulse)

    def update_snapshot(self, snapshot: WorkflowSnapshot):
        self.transcript_label.configure(text=snapshot.live_transcript or self.PLACEHOLDER)

    def destroy(self):
        if self._after_id is not None:
            self.after_cancel(self._after_id)
            self._after_id = None
        super().destroy()


class LoadingView(ctk.CTkFrame):
    """Analyzing state: rotating loading messages"""

    def __init__(self, master):
        super().__init__(master, fg_color="transparent")
        self._tick = 0
        self._after_id = None

        self.progress = ctk.CTkProgressBar(self, mode="indeterminate", width=320)
        self.progress.pack(pady=(120, 24))
        self.progress.start()

        self.message = ctk.CTkLabel(
            self, text=loading_message(0), font=ctk.CTkFont(size=18, weight="bold"), text_color=ACCENT_HOVER
        )
        self.message.pack()
        ctk.CTkLabel(
            self, text="Your dream is being interpreted and illustrated.", text_color=MUTED
        ).pack(pady=(8, 0))
        self._after_id = self.after(LOADING_INTERVAL_MS, self._rotate)

    def _rotate(self):
        self._tick += 1
        self.message.configure(text=loading_message(self._tick))
        self._after_id = self.after(LOADING_INTERVAL_MS, self._rotate)

    def update_snapshot(self, snapshot: WorkflowSnapshot):
        pass

    def destroy(self):
        self.progress.stop()
        if self._after_id is not None:
            self.after_cancel(self._after_id)
            self._after_id = None
        super().destroy()


class DreamView(ctk.CTkFrame):
    """Complete state: dream details, tags and follow-up chat"""

    def __init__(self, master, workflow, images: ImageCache, entry: DreamEntry,
                 on_send: Callable[[str], None], on_save: Callable[[], None]):
        super().__init__(master, fg_color="transparent")
        self.workflow = workflow
        self.entry_id = entry.id
        self._on_send = on_send
        self._rendered_tags: tuple[str, ...] = ()
        self._rendered_turns = -1
        self._rendered_pending: Optional[bool] = None

        self.grid_columnconfigure(0, weight=3, uniform="dream")
        self.grid_columnconfigure(1, weight=2, uniform="dream")
        self.grid_rowconfigure(0, weight=1)

        details = ctk.CTkScrollableFrame(self)
        details.grid(row=0, column=0, sticky="nsew", padx=(10, 6), pady=10)

        image = images.get(entry, 360)
        if image is not None:
            ctk.CTkLabel(details, text="", image=image).pack(pady=(10, 12))

        ctk.CTkLabel(
            details,
            text=transcript_preview(entry.transcript, limit=2000),
            font=ctk.CTkFont(size=14, slant="italic"),
            wraplength=520,
            justify="left",
            text_color=MUTED,
        ).pack(anchor="w", padx=12, pady=(0, 12))

        for kind, text in interpretation_blocks(entry.interpretation):
            if kind == "heading":
                ctk.CTkLabel(
                    details, text=text, font=ctk.CTkFont(size=17, weight="bold"), text_color=ACCENT_HOVER
                ).pack(anchor="w", padx=12, pady=(12, 4))
            else:
                ctk.CTkLabel(
                    details, text=text, wraplength=520, justify="left", font=ctk.CTkFont(size=14)
                ).pack(anchor="w", padx=12, pady=2)

        # Tags
        ctk.CTkLabel(
            details, text="🏷️  Add Tags", font=ctk.CTkFont(size=14, weight="bold")
        ).pack(anchor="w", padx=12, pady=(18, 4))
        self.tags_frame = ctk.CTkFrame(details, fg_color="transparent")
        self.tags_frame.pack(fill="x", padx=12)
        self.tag_entry = ctk.CTkEntry(details, placeholder_text="e.g., 'flying', 'anxiety'...")
        self.tag_entry.pack(fill="x", padx=12, pady=(6, 12))
        self.tag_entry.bind("<Return>", self._add_tag)

        ctk.CTkButton(
            details,
            text="💾 Save and Return to Journal",
            command=on_save,
            height=38,
            fg_color=ACCENT,
            hover_color=ACCENT_HOVER,
            font=ctk.CTkFont(size=14, weight="bold"),
        ).pack(fill="x", padx=12, pady=(4, 12))

        # Chat
        chat_panel = ctk.CTkFrame(self)
        chat_panel.grid(row=0, column=1, sticky="nsew", padx=(6, 10), pady=10)
        ctk.CTkLabel(
            chat_panel, text="Explore Your Dream", font=ctk.CTkFont(size=16, weight="bold")
        ).pack(anchor="w", padx=12, pady=(10, 6))
        self.chat_scroll = ctk.CTkScrollableFrame(chat_panel, fg_color="transparent")
        self.chat_scroll.pack(fill="both", expand=True, padx=6)

        input_row = ctk.CTkFrame(chat_panel, fg_color="transparent")
        input_row.pack(fill="x", padx=8, pady=8)
        self.chat_entry = ctk.CTkEntry(input_row, placeholder_text="e.g., 'What does the forest mean?'")
        self.chat_entry.pack(side="left", fill="x", expand=True, padx=(0, 6))
        self.chat_entry.bind("<Return>", lambda _event: self._send())
        self.send_button = ctk.CTkButton(input_row, text="➤", width=40, command=self._send)
        self.send_button.pack(side="right")

    def _add_tag(self, _event=None):
        tag = self.tag_entry.get().strip()
        if tag:
            self.workflow.add_tag(tag)
        self.tag_entry.delete(0, "end")

    def _send(self):
        text = self.chat_entry.get().strip()
        if not text or str(self.send_button.cget("state")) == "disabled":
            return
        self.chat_entry.delete(0, "end")
        self._on_send(text)

    def update_snapshot(self, snapshot: WorkflowSnapshot):
        entry = snapshot.active_dream
        if entry is not None and entry.tags != self._rendered_tags:
            self._render_tags(entry.tags)
        if (len(snapshot.chat_history) != self._rendered_turns
                or snapshot.chat_pending != self._rendered_pending):
            self._render_chat(snapshot)

    def _render_tags(self, tags: tuple[str, ...]):
        for widget in self.tags_frame.winfo_children():
            widget.destroy()
        for tag in tags:
            ctk.CTkButton(
                self.tags_frame,
                text=f"#{tag}  ✕",
                width=0,
                height=26,
                fg_color="#334155",
                hover_color=DANGER,
                command=lambda t=tag: self.workflow.remove_tag(t),
            ).pack(side="left", padx=(0, 6), pady=2)
        self._rendered_tags = tags

    def _render_chat(self, snapshot: WorkflowSnapshot):
        for widget in self.chat_scroll.winfo_children():
            widget.destroy()
        for turn in snapshot.chat_history:
            is_user = turn.role is Role.USER
            ctk.CTkLabel(
                self.chat_scroll,
                text=turn.text,
                wraplength=300,
                justify="left",
                corner_radius=12,
                fg_color=ACCENT if is_user else "#334155",
                padx=10,
                pady=6,
            ).pack(anchor="e" if is_user else "w", padx=4, pady=4)
        if snapshot.chat_pending:
            ctk.CTkLabel(self.chat_scroll, text="...", text_color=MUTED).pack(anchor="w", padx=8, pady=4)

        state = "disabled" if snapshot.chat_pending else "normal"
        self.chat_entry.configure(state=state)
        self.send_button.configure(state=state)
        self._rendered_turns = len(snapshot.chat_history)
        self._rendered_pending = snapshot.chat_pending
        self.chat_scroll.after(50, lambda: self.chat_scroll._parent_canvas.yview_moveto(1.0))


class ErrorView(ctk.CTkFrame):
    """Error state: message and retry"""

    def __init__(self, master, message: str, on_retry: Callable[[], None]):
        super().__init__(master, fg_color="transparent")
        ctk.CTkLabel(
            self, text="An Error Occurred", font=ctk.CTkFont(size=24, weight="bold"), text_color="#f87171"
        ).pack(pady=(120, 16))
        ctk.CTkLabel(self, text=message, wraplength=560, justify="center").pack(padx=30, pady=(0, 24))
        ctk.CTkButton(
            self,
            text="Try Again",
            command=on_retry,
            height=40,
            corner_radius=20,
            fg_color=ACCENT,
            hover_color=ACCENT_HOVER,
            font=ctk.CTkFont(size=14, weight="bold"),
        ).pack()

    def update_snapshot(self, snapshot: WorkflowSnapshot):
        pass


def _bind_click(widget, handler):
    widget.bind("<Button-1>", handler)
    for child in widget.winfo_children():
        _bind_click(child, handler)
