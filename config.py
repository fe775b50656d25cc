# config.py
from dataclasses import dataclass, asdict
from typing import Optional, Callable, Dict, Any, List
import json
import os
from pathlib import Path
import logging

from spectrum import BAND_COUNT

# Configure logging with a default level
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.ERROR  # Matches the AudioConfig default
)
logger = logging.getLogger(__name__)

VERSION = "2.0.0"

# Normalized bar values for the built-in presets
DEFAULT_PRESETS = {
    'White': [1.0] * BAND_COUNT,
    'Pink': [round(1.0 - i * 0.3 / (BAND_COUNT - 1), 4) for i in range(BAND_COUNT)],
    'Brown': [round(1.0 - i * 0.6 / (BAND_COUNT - 1), 4) for i in range(BAND_COUNT)],
    'Silence': [0.0] * BAND_COUNT,
}

@dataclass
class AudioConfig:
    # Logging settings
    log_level: str = 'ERROR'  # Can be DEBUG, INFO, WARNING, ERROR, CRITICAL

    # Audio I/O settings
    sample_rate: int = 44100
    channels: int = 1
    output_buffer_size: int = 1024  # Output device blocksize
    device_output_index: Optional[int] = None
    output_device_enabled: bool = True
    volume: float = 0.5

    # Synthesis settings
    synthesis_mode: str = 'fft'  # fft (canonical) or dct (legacy)
    crossfade_samples: int = 2048
    headroom: float = 0.9
    max_pool_chunks: int = 16

    # Export dialog settings
    export_duration: float = 30.0
    export_amplitude: float = 1.0
    fade_in_duration: float = 0.5
    fade_out_duration: float = 0.5
    fade_in_power: float = 0.5
    fade_out_power: float = 0.5
    enable_fade: bool = True
    enable_normalization: bool = True
    normalize_value: float = 0.5
    last_export_folder: str = ""

    # Status callbacks
    on_underflow: Optional[Callable] = None

    def __post_init__(self):
        # Set the global logging level when AudioConfig is instantiated
        logging.getLogger().setLevel(self.log_level)

    def to_dict(self) -> dict:
        """Convert config to dictionary, excluding callbacks"""
        d = asdict(self)
        d.pop('on_underflow', None)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> 'AudioConfig':
        """Create config from dictionary, ignoring unknown fields"""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}
        filtered_data.pop('on_underflow', None)
        return cls(**filtered_data)

class SettingsManager:
    def __init__(self, app_name: str = "noise_shaper", settings_file: Optional[Path] = None):
        self.app_name = app_name
        self.settings_file = Path(settings_file) if settings_file else self._get_settings_path()
        self.config = AudioConfig()
        self._initialize_default_settings()
        self.settings = self.default_settings.copy()
        # Apply initial log level
        logging.getLogger().setLevel(self.config.log_level)

    def _get_settings_path(self) -> Path:
        """Get platform-specific settings path"""
        if os.name == 'nt':  # Windows
            base_path = Path(os.getenv('APPDATA', Path.home()))
        else:  # Unix/Linux/Mac
            base_path = Path.home() / '.config'
        return base_path / self.app_name / 'settings.json'

    def _initialize_default_settings(self):
        """Initialize default settings structure"""
        self.default_settings = {
            'version': VERSION,
            'audio': {
                'log_level': self.config.log_level,
                'sample_rate': self.config.sample_rate,
                'output_buffer_size': self.config.output_buffer_size,
                'volume': self.config.volume,
                'synthesis_mode': self.config.synthesis_mode,
            },
            'export': {
                'export_duration': self.config.export_duration,
                'fade_in_duration': self.config.fade_in_duration,
                'fade_out_duration': self.config.fade_out_duration,
                'enable_fade': self.config.enable_fade,
                'enable_normalization': self.config.enable_normalization,
                'normalize_value': self.config.normalize_value,
                'last_export_folder': self.config.last_export_folder,
            },
            'bands': list(DEFAULT_PRESETS['Pink']),
            'presets': {name: list(bars) for name, bars in DEFAULT_PRESETS.items()},
        }

    def save_settings(self, settings: Optional[Dict[str, Any]] = None):
        """Save settings to file"""
        if settings is not None:
            self.settings = settings
        try:
            # Ensure directory exists
            self.settings_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, 'w') as f:
                json.dump(self.settings, f, indent=4)
            logger.debug(f"Settings saved to {self.settings_file}")
        except Exception as e:
            logger.error(f"Error saving settings: {e}")

    def load_settings(self) -> Dict[str, Any]:
        """Load settings from file"""
        try:
            if self.settings_file.exists():
                with open(self.settings_file, 'r') as f:
                    loaded = json.load(f)
                self.settings = self._merge_settings(self.default_settings, loaded)
                return self.settings
        except Exception as e:
            logger.error(f"Error loading settings: {e}")
        self.settings = self._merge_settings(self.default_settings, {})
        return self.settings

    def _merge_settings(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge settings, with override taking priority"""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_settings(result[key], value)
            else:
                result[key] = value
        return result

    def apply_to_config(self, settings: Optional[Dict[str, Any]] = None):
        """Apply loaded settings to AudioConfig instance"""
        settings = settings if settings is not None else self.settings
        for section in ('audio', 'export'):
            values = settings.get(section, {})
            for key, value in values.items():
                if hasattr(self.config, key):
                    setattr(self.config, key, value)
                else:
                    logger.warning(f"Ignoring unknown {section} setting: {key}")

        # Apply log level if it has changed
        logging.getLogger().setLevel(self.config.log_level)

    def get_config(self) -> AudioConfig:
        """Get current AudioConfig instance"""
        return self.config

    @staticmethod
    def _valid_bands(bands) -> bool:
        try:
            return len(bands) == BAND_COUNT and all(0.0 <= float(v) <= 1.0 for v in bands)
        except (TypeError, ValueError):
            return False

    def get_bands(self) -> List[float]:
        """Last edited bar values, or the defaults if the stored ones are unusable"""
        bands = self.settings.get('bands')
        if not self._valid_bands(bands):
            logger.warning("Stored bands are invalid, using defaults")
            bands = self.default_settings['bands']
        return [float(v) for v in bands]

    def set_bands(self, bands: List[float]):
        self.settings['bands'] = [float(v) for v in bands]

    def preset_names(self) -> List[str]:
        return sorted(self.settings.get('presets', {}).keys())

    def get_preset(self, name: str) -> List[float]:
        """Return the normalized bar values of a stored preset"""
        presets = self.settings.get('presets', {})
        if name not in presets:
            raise KeyError(f"Unknown preset: {name}")
        if not self._valid_bands(presets[name]):
            raise ValueError(f"Preset '{name}' does not hold {BAND_COUNT} values in [0, 1]")
        return [float(v) for v in presets[name]]

    def save_preset(self, name: str, bands: List[float]):
        if not self._valid_bands(bands):
            raise ValueError(f"A preset needs {BAND_COUNT} values in [0, 1]")
        presets = dict(self.settings.get('presets', {}))
        presets[name] = [float(v) for v in bands]
        self.settings['presets'] = presets
        logger.debug(f"Stored preset '{name}'")

    def delete_preset(self, name: str):
        presets = dict(self.settings.get('presets', {}))
        if name not in presets:
            raise KeyError(f"Unknown preset: {name}")
        del presets[name]
        self.settings['presets'] = presets
