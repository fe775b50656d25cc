# ui_components.py
from PyQt6.QtWidgets import (
    QHBoxLayout, QComboBox, QPushButton, QLabel, QGroupBox,
    QFormLayout, QDoubleSpinBox, QCheckBox, QSlider, QDialog,
    QDialogButtonBox, QProgressBar, QInputDialog, QMessageBox
)
from PyQt6.QtCore import Qt, pyqtSignal, QTimer
from typing import Dict, Any, List, Optional
import sounddevice as sd
import pyqtgraph as pg
import numpy as np
import threading
import logging

from config import AudioConfig
from spectrum import BAND_COUNT, band_edges

logger = logging.getLogger(__name__)

class BandEditor(pg.PlotWidget):
    """Bar graph of the 32 band levels; click or drag to paint them"""
    bands_changed = pyqtSignal(list)

    def __init__(self, bands: Optional[List[float]] = None):
        super().__init__()
        self._bands = np.array(bands if bands is not None else [0.5] * BAND_COUNT, dtype=float)
        self._painting = False

        self.setBackground('w')
        self.setMouseEnabled(x=False, y=False)
        self.hideButtons()
        self.setMenuEnabled(False)
        self.setXRange(-0.5, BAND_COUNT - 0.5, padding=0)
        self.setYRange(0, 1, padding=0.02)
        self.setLabel('left', 'Level')
        self.setLabel('bottom', 'Frequency (Hz)')

        # Label a few band centers with their frequency
        edges = band_edges()
        centers = np.sqrt(edges[:-1] * edges[1:])
        ticks = [(i, f"{centers[i]:.0f}") for i in range(0, BAND_COUNT, 4)]
        self.getPlotItem().getAxis('bottom').setTicks([ticks])

        self.bars = pg.BarGraphItem(
            x=np.arange(BAND_COUNT), height=self._bands, width=0.8,
            brush=pg.mkBrush(100, 50, 255, 160), pen=pg.mkPen(80, 40, 200)
        )
        self.addItem(self.bars)

    def bands(self) -> List[float]:
        return self._bands.tolist()

    def set_bands(self, bands: List[float], emit: bool = False):
        self._bands = np.clip(np.array(bands, dtype=float), 0.0, 1.0)
        self.bars.setOpts(height=self._bands)
        if emit:
            self.bands_changed.emit(self.bands())

    def _paint_at(self, pos):
        point = self.getPlotItem().vb.mapSceneToView(pos)
        band = int(round(point.x()))
        if 0 <= band < BAND_COUNT:
            level = float(np.clip(point.y(), 0.0, 1.0))
            # Snap the bottom of the graph to full silence
            if level < 0.02:
                level = 0.0
            if self._bands[band] != level:
                self._bands[band] = level
                self.bars.setOpts(height=self._bands)
                self.bands_changed.emit(self.bands())

    def mousePressEvent(self, event):
        if event.button() == Qt.MouseButton.LeftButton:
            self._painting = True
            self._paint_at(self.mapToScene(event.position().toPoint()))
            event.accept()
        else:
            super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        if self._painting:
            self._paint_at(self.mapToScene(event.position().toPoint()))
            event.accept()
        else:
            super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event):
        self._painting = False
        super().mouseReleaseEvent(event)

class PlaybackPanel(QGroupBox):
    playback_toggled = pyqtSignal(bool)
    volume_changed = pyqtSignal(float)
    device_changed = pyqtSignal(object)
    export_clicked = pyqtSignal()

    def __init__(self, config: AudioConfig):
        super().__init__("Playback")
        self.config = config
        self.is_playing = False
        self.init_ui()

    def init_ui(self):
        layout = QFormLayout(self)
        layout.setSpacing(4)
        layout.setContentsMargins(6, 8, 6, 8)

        self.play_button = QPushButton("Play")
        self.play_button.clicked.connect(self.toggle_playback)
        layout.addRow(self.play_button)

        self.device_combo = DeviceComboBox()
        if self.config.device_output_index is not None:
            index = self.device_combo.findData(self.config.device_output_index)
            if index >= 0:
                self.device_combo.setCurrentIndex(index)
        self.device_combo.currentIndexChanged.connect(
            lambda: self.device_changed.emit(self.device_combo.currentData()))
        layout.addRow("Output Device:", self.device_combo)

        # Volume slider
        volume_layout = QHBoxLayout()
        self.volume_slider = QSlider(Qt.Orientation.Horizontal)
        self.volume_slider.setRange(0, 100)
        initial_volume = int(self.config.volume * 100)
        self.volume_slider.setValue(initial_volume)
        volume_value = QLabel(f"{initial_volume}%")
        self.volume_slider.valueChanged.connect(lambda v: volume_value.setText(f"{v}%"))
        self.volume_slider.valueChanged.connect(lambda v: self.volume_changed.emit(v / 100.0))
        volume_layout.addWidget(self.volume_slider)
        volume_layout.addWidget(volume_value)
        layout.addRow("Volume:", volume_layout)

        # Generation progress after each spectrum change
        self.progress = QProgressBar()
        self.progress.setRange(0, 100)
        self.progress.setValue(0)
        layout.addRow("Quality:", self.progress)

        # Underflow indicator, click to reset
        self.underflow_indicator = QLabel("UF")
        self.underflow_indicator.setToolTip(
            "Output Underflow - CPU isn't producing data fast enough for sound device\n"
            "Click to reset indicator"
        )
        self._set_indicator_color('gray')
        self.underflow_indicator.mousePressEvent = lambda _: self._set_indicator_color('gray')

        self.export_button = QPushButton("Export WAV...")
        self.export_button.clicked.connect(self.export_clicked.emit)
        status_layout = QHBoxLayout()
        status_layout.addWidget(self.export_button)
        status_layout.addStretch()
        status_layout.addWidget(self.underflow_indicator)
        layout.addRow(status_layout)

    def _set_indicator_color(self, color: str):
        self.underflow_indicator.setStyleSheet(f"""
            QLabel {{
                color: white;
                background: {color};
                padding: 2px 5px;
                border-radius: 3px;
                font-weight: bold;
            }}
        """)

    def set_underflow(self):
        self._set_indicator_color('#FF6600')

    def set_percent(self, percent: int):
        self.progress.setValue(percent)

    def toggle_playback(self):
        self.is_playing = not self.is_playing
        self.play_button.setText("Stop" if self.is_playing else "Play")
        self.device_combo.setEnabled(not self.is_playing)
        self.playback_toggled.emit(self.is_playing)

class PresetPanel(QGroupBox):
    preset_selected = pyqtSignal(str)
    save_requested = pyqtSignal(str)
    delete_requested = pyqtSignal(str)

    def __init__(self, names: List[str]):
        super().__init__("Presets")
        layout = QHBoxLayout(self)
        self.combo = QComboBox()
        self.set_names(names)
        load_button = QPushButton("Load")
        save_button = QPushButton("Save As...")
        delete_button = QPushButton("Delete")
        load_button.clicked.connect(lambda: self.preset_selected.emit(self.combo.currentText()))
        save_button.clicked.connect(self._ask_name)
        delete_button.clicked.connect(self._confirm_delete)
        layout.addWidget(self.combo, stretch=1)
        layout.addWidget(load_button)
        layout.addWidget(save_button)
        layout.addWidget(delete_button)

    def set_names(self, names: List[str]):
        current = self.combo.currentText()
        self.combo.clear()
        self.combo.addItems(names)
        index = self.combo.findText(current)
        if index >= 0:
            self.combo.setCurrentIndex(index)

    def _ask_name(self):
        name, ok = QInputDialog.getText(self, "Save Preset", "Preset name:")
        if ok and name.strip():
            self.save_requested.emit(name.strip())

    def _confirm_delete(self):
        name = self.combo.currentText()
        if not name:
            return
        reply = QMessageBox.question(self, "Delete Preset", f"Delete preset '{name}'?")
        if reply == QMessageBox.StandardButton.Yes:
            self.delete_requested.emit(name)

class ExportDialog(QDialog):
    def __init__(self, config: AudioConfig, parent=None):
        super().__init__(parent)
        self.config = config
        self.setWindowTitle("Export Noise")
        self.init_ui()

    def init_ui(self):
        layout = QFormLayout(self)

        self.duration = QDoubleSpinBox()
        self.duration.setRange(1.0, 3600.0)
        self.duration.setValue(self.config.export_duration)
        self.duration.setSuffix(" s")
        layout.addRow("Duration:", self.duration)

        self.enable_fade = QCheckBox("Fade in/out")
        self.enable_fade.setChecked(self.config.enable_fade)
        layout.addRow(self.enable_fade)

        self.fade_in = QDoubleSpinBox()
        self.fade_in.setRange(0.0, 60.0)
        self.fade_in.setDecimals(3)
        self.fade_in.setValue(self.config.fade_in_duration)
        self.fade_in.setSuffix(" s")
        layout.addRow("Fade In:", self.fade_in)

        self.fade_out = QDoubleSpinBox()
        self.fade_out.setRange(0.0, 60.0)
        self.fade_out.setDecimals(3)
        self.fade_out.setValue(self.config.fade_out_duration)
        self.fade_out.setSuffix(" s")
        layout.addRow("Fade Out:", self.fade_out)

        self.enable_normalization = QCheckBox("Normalize")
        self.enable_normalization.setChecked(self.config.enable_normalization)
        layout.addRow(self.enable_normalization)

        self.normalize_value = QDoubleSpinBox()
        self.normalize_value.setRange(0.01, 1.0)
        self.normalize_value.setSingleStep(0.05)
        self.normalize_value.setValue(self.config.normalize_value)
        layout.addRow("Peak Level:", self.normalize_value)

        self.enable_fade.toggled.connect(self.fade_in.setEnabled)
        self.enable_fade.toggled.connect(self.fade_out.setEnabled)
        self.enable_normalization.toggled.connect(self.normalize_value.setEnabled)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok |
            QDialogButtonBox.StandardButton.Cancel
        )
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addRow(buttons)

    def get_settings(self) -> Dict[str, Any]:
        return {
            'export_duration': self.duration.value(),
            'enable_fade': self.enable_fade.isChecked(),
            'fade_in_duration': self.fade_in.value(),
            'fade_out_duration': self.fade_out.value(),
            'enable_normalization': self.enable_normalization.isChecked(),
            'normalize_value': self.normalize_value.value(),
        }

class DeviceComboBox(QComboBox):
    """QComboBox for output device selection with automatic refresh"""

    device_list_updated = pyqtSignal()  # Emitted from the refresh thread

    def __init__(self):
        super().__init__()
        self._current_devices = None
        self._refresh_thread = None
        self._lock = threading.Lock()
        self._popup_visible = False

        # Periodic refresh while the popup is open
        self._refresh_timer = QTimer(self)
        self._refresh_timer.setInterval(1000)
        self._refresh_timer.timeout.connect(self._start_refresh)

        self._current_devices = self._query_devices()
        self._apply_device_list_update()
        self.device_list_updated.connect(self._apply_device_list_update)

    def showPopup(self):
        if not self.isEnabled():
            return
        self._popup_visible = True
        super().showPopup()
        self._start_refresh()
        self._refresh_timer.start()

    def hidePopup(self):
        self._popup_visible = False
        self._refresh_timer.stop()
        super().hidePopup()

    def _start_refresh(self):
        """Start a new refresh thread if one isn't already running"""
        if self._refresh_thread is None or not self._refresh_thread.is_alive():
            self._refresh_thread = threading.Thread(target=self._background_refresh, daemon=True)
            self._refresh_thread.start()

    def _query_devices(self) -> list:
        device_list = []
        try:
            devices = sd.query_devices()
        except Exception as e:
            logger.error(f"Error querying devices: {e}")
            return device_list
        for i, device in enumerate(devices):
            channels = device['max_output_channels']
            if channels > 0:
                device_list.append((f"{device['name']} (Out: {channels})", i))
        return device_list

    def _background_refresh(self):
        with self._lock:
            device_list = self._query_devices()
            if self._current_devices != device_list:
                logger.debug("Device list changed, will update combo box")
                self._current_devices = device_list
                # Update the UI in the main thread
                self.device_list_updated.emit()

    def _apply_device_list_update(self):
        current_data = self.currentData()
        self.blockSignals(True)
        self.clear()
        self.addItem("Default Device", None)
        for name, idx in self._current_devices:
            self.addItem(name, idx)
        if current_data is not None:
            index = self.findData(current_data)
            if index >= 0:
                self.setCurrentIndex(index)
        self.blockSignals(False)

        # Re-show popup to force size update
        if self._popup_visible:
            self.hidePopup()
            self.showPopup()
