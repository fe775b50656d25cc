# app.py
import sys
import os
from typing import List, Optional
from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QFileDialog, QMessageBox, QStatusBar
)
from PyQt6.QtCore import pyqtSignal, QSettings
import logging

from config import SettingsManager, VERSION
from audio_sources import NoiseSource
from exporter import AudioExporter
from spectrum import SpectrumData
from synthesis import SynthesisMode
from ui_components import BandEditor, PlaybackPanel, PresetPanel, ExportDialog

# Get logger but don't set level - it's controlled by AudioConfig
logger = logging.getLogger(__name__)

class NoiseShaperUI(QMainWindow):
    # Progress arrives on the generator thread; hop to the GUI thread
    percent_changed = pyqtSignal(int)
    underflow = pyqtSignal()

    def __init__(self, settings_manager: Optional[SettingsManager] = None):
        super().__init__()
        self.settings_manager = settings_manager or SettingsManager()
        self.settings_manager.load_settings()
        self.settings_manager.apply_to_config()
        self.config = self.settings_manager.get_config()
        self.config.on_underflow = self.underflow.emit

        self.setWindowTitle(f"Noise Shaper v{VERSION}")
        self.setGeometry(100, 100, 900, 560)

        self.init_ui()
        self.percent_changed.connect(self.playback_panel.set_percent)
        self.underflow.connect(self.playback_panel.set_underflow)

        bands = self.settings_manager.get_bands()
        self.band_editor.set_bands(bands)
        self.source = NoiseSource(self.config, spectrum=SpectrumData(bands),
                                  progress_callback=self.percent_changed.emit)

        self.load_window_geometry()

    def init_ui(self):
        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QVBoxLayout(central_widget)

        self.band_editor = BandEditor()
        self.band_editor.bands_changed.connect(self.on_bands_changed)
        main_layout.addWidget(self.band_editor, stretch=1)

        bottom_layout = QHBoxLayout()
        self.playback_panel = PlaybackPanel(self.config)
        self.playback_panel.playback_toggled.connect(self.on_playback_toggled)
        self.playback_panel.volume_changed.connect(self.on_volume_changed)
        self.playback_panel.device_changed.connect(self.on_device_changed)
        self.playback_panel.export_clicked.connect(self.export_noise)
        bottom_layout.addWidget(self.playback_panel, stretch=1)

        self.preset_panel = PresetPanel(self.settings_manager.preset_names())
        self.preset_panel.preset_selected.connect(self.load_preset)
        self.preset_panel.save_requested.connect(self.save_preset)
        self.preset_panel.delete_requested.connect(self.delete_preset)
        bottom_layout.addWidget(self.preset_panel, stretch=1)
        main_layout.addLayout(bottom_layout)

        self.statusbar = QStatusBar()
        self.setStatusBar(self.statusbar)

    def load_window_geometry(self):
        """Load and apply saved window geometry"""
        settings = QSettings('NoiseShaper', 'NoiseShaper')
        geometry = settings.value('window_geometry')
        if geometry:
            self.restoreGeometry(geometry)

    def show_error(self, title: str, message: str):
        """Shows an error dialog"""
        QMessageBox.critical(self, title, message)

    def on_bands_changed(self, bands: List[float]):
        self.settings_manager.set_bands(bands)
        self.source.update_spectrum(SpectrumData(bands))

    def on_playback_toggled(self, playing: bool):
        try:
            if playing:
                self.source.start()
                self.statusbar.showMessage("Playing")
            else:
                self.source.stop()
                self.statusbar.showMessage("Stopped")
        except Exception as e:
            logger.error(f"Playback error: {e}")
            self.playback_panel.toggle_playback()
            self.show_error("Audio Error", f"Could not open audio output: {e}")

    def on_volume_changed(self, volume: float):
        self.source.set_volume(volume)
        self.settings_manager.settings['audio']['volume'] = volume

    def on_device_changed(self, device_index):
        self.config.device_output_index = device_index
        try:
            self.source.update_output_device()
        except Exception as e:
            logger.error(f"Device change error: {e}")
            self.show_error("Audio Error", f"Could not open audio output: {e}")

    def load_preset(self, name: str):
        try:
            bands = self.settings_manager.get_preset(name)
        except (KeyError, ValueError) as e:
            self.show_error("Preset Error", str(e))
            return
        self.band_editor.set_bands(bands, emit=True)
        self.statusbar.showMessage(f"Loaded preset '{name}'")

    def save_preset(self, name: str):
        self.settings_manager.save_preset(name, self.band_editor.bands())
        self.settings_manager.save_settings()
        self.preset_panel.set_names(self.settings_manager.preset_names())
        self.statusbar.showMessage(f"Saved preset '{name}'")

    def delete_preset(self, name: str):
        try:
            self.settings_manager.delete_preset(name)
        except KeyError as e:
            self.show_error("Preset Error", str(e))
            return
        self.settings_manager.save_settings()
        self.preset_panel.set_names(self.settings_manager.preset_names())

    def export_noise(self):
        """Render the current spectrum and write it to a WAV file"""
        dialog = ExportDialog(self.config, self)
        if not dialog.exec():
            return
        export_settings = dialog.get_settings()
        for key, value in export_settings.items():
            setattr(self.config, key, value)

        filename, _ = QFileDialog.getSaveFileName(
            self, "Export WAV", self.config.last_export_folder, "WAV Files (*.wav)")
        if not filename:
            return
        if not filename.lower().endswith('.wav'):
            filename += '.wav'

        try:
            self.statusbar.showMessage("Rendering...")
            QApplication.processEvents()
            signal = AudioExporter.render(
                SpectrumData(self.band_editor.bands()),
                self.config.export_duration,
                self.config.sample_rate,
                mode=SynthesisMode.from_name(self.config.synthesis_mode),
                crossfade_samples=self.config.crossfade_samples,
                amplitude=self.config.export_amplitude,
                fade_in_power=self.config.fade_in_power,
                fade_out_power=self.config.fade_out_power,
                **export_settings
            )
            AudioExporter.export_wav(filename, signal, self.config.sample_rate)
            self.config.last_export_folder = os.path.dirname(filename)
            self.settings_manager.settings['export'].update(export_settings)
            self.settings_manager.settings['export']['last_export_folder'] = self.config.last_export_folder
            self.statusbar.showMessage(f"Exported to {filename}")
        except Exception as e:
            logger.error(f"Export error: {e}")
            self.show_error("Export Error", f"Error exporting noise: {e}")

    def closeEvent(self, event):
        """Handle window close events"""
        settings = QSettings('NoiseShaper', 'NoiseShaper')
        settings.setValue('window_geometry', self.saveGeometry())
        try:
            self.source.close()
            self.settings_manager.save_settings()
        except Exception as e:
            logger.error(f"Shutdown error: {e}")
        finally:
            event.accept()

def main():
    app = QApplication(sys.argv)
    window = NoiseShaperUI()
    window.show()
    sys.exit(app.exec())

if __name__ == '__main__':
    main()
