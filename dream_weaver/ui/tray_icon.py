"""
System tray icon for Dream Weaver
"""

from threading import Thread

import pystray
from PIL import Image, ImageDraw

from ..models import WorkflowState

RECORDING_COLOR = (220, 38, 38)
IDLE_COLOR = (99, 102, 241)


class TrayIcon:
    """System tray icon manager

    Menu actions run on the pystray thread, so they only post requests to the
    main window's event queue.
    """

    def __init__(self, app_controller):
        self.app = app_controller
        self.icon = None
        self._unsubscribe = None
        self._running = False
        self._create_icon()

    def _is_recording(self) -> bool:
        return self.app.workflow.state is WorkflowState.RECORDING

    def _create_icon_image(self, recording: bool = False):
        """Create icon image"""
        width = 64
        height = 64
        color = RECORDING_COLOR if recording else IDLE_COLOR

        image = Image.new('RGBA', (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)
        draw.ellipse([4, 4, width - 4, height - 4], fill=color)
        draw.ellipse([22, 14, 46, 38], fill=(255, 255, 255))

        return image

    def _create_icon(self):
        """Create and configure system tray icon"""
        menu = pystray.Menu(
            pystray.MenuItem(
                'Show Dream Weaver',
                self._show_window,
                default=True
            ),
            pystray.MenuItem(
                lambda item: 'Stop Recording' if self._is_recording() else 'Record New Dream',
                self._toggle_recording,
            ),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem(
                'Settings',
                self._show_settings
            ),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem(
                'Quit',
                self._quit
            )
        )

        self.icon = pystray.Icon(
            'dream-weaver',
            self._create_icon_image(),
            'Dream Weaver',
            menu
        )

    def _post(self, kind):
        if self.app.window:
            self.app.window.events.put((kind, None))

    def _show_window(self, icon, item):
        self._post("show")

    def _toggle_recording(self, icon, item):
        self._post("toggle_recording")

    def _show_settings(self, icon, item):
        self._post("settings")

    def _quit(self, icon, item):
        """Quit application"""
        self.stop()
        self._post("quit")

    def _on_snapshot(self, snapshot):
        """Recolour the icon when recording starts or stops"""
        if self.icon:
            self.icon.icon = self._create_icon_image(snapshot.state is WorkflowState.RECORDING)
            self.icon.update_menu()

    def run(self):
        """Run icon in background thread"""
        self._unsubscribe = self.app.workflow.subscribe(self._on_snapshot)
        self._running = True
        Thread(target=self.icon.run, name="dream-weaver-tray", daemon=True).start()

    def stop(self):
        """Stop icon"""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self.icon and self._running:
            self._running = False
            self.icon.stop()
