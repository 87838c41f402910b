"""JSON configuration store: wheel look, timing and the sector list."""
import json
import logging
import os
import shutil
import threading
from datetime import datetime

from luckspin.models import DEFAULT_SECTORS

logger = logging.getLogger(__name__)

CONFIG_FILE = os.environ.get('LUCKSPIN_CONFIG', 'config.json')
DISPLAY_MODES = ('IMAGE', 'TEXT')

DEFAULT_CONFIG = {
    'title': 'LuckSpin Pro',
    'logo_url': None,
    'ip_whitelist': [],
    'customer_service_url': '',
    'wheel_display_mode': 'TEXT',
    'spin_duration_seconds': 5,
    'extra_turns': 5,
    'pointer_angle': 270,
    'jitter_fraction': 0.4,
    'sectors': [s.to_dict() for s in DEFAULT_SECTORS],
}

file_lock = threading.RLock()


def create_backup(filename):
    """Create a timestamped backup of a JSON file"""
    if os.path.exists(filename):
        backup_path = f"{filename}.{datetime.now().strftime('%Y%m%d_%H%M%S')}.bak"
        try:
            shutil.copy2(filename, backup_path)
            logger.info(f"💾 Backup created: {backup_path}")
            return backup_path
        except OSError as e:
            logger.error(f"💥 Backup creation failed: {e}")
    return None


def load_json_file(filename, default_data):
    """Load JSON file with corruption recovery; a missing file is created from defaults"""
    with file_lock:
        if not os.path.exists(filename):
            save_json_file(filename, default_data)
            return default_data
        try:
            with open(filename, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, type(default_data)):
                raise json.JSONDecodeError(f"Expected {type(default_data).__name__}", filename, 0)
            return data
        except json.JSONDecodeError:
            logger.error(f"🚨 CORRUPTION: '{filename}' corrupted. Auto-recovering...")
            backup_path = create_backup(filename)
            if backup_path:
                logger.info(f"🔒 Corrupted file backed up as: {backup_path}")
            save_json_file(filename, default_data)
            logger.info("✅ Recovery complete. File reset to defaults.")
            return default_data
        except OSError as e:
            logger.error(f"💥 IO ERROR reading '{filename}': {e}")
            return default_data


def save_json_file(filename, data):
    """Save JSON file atomically, keeping a backup of the previous version"""
    with file_lock:
        temp_filename = f"{filename}.tmp"
        try:
            json.dumps(data, indent=2, ensure_ascii=False)
            if os.path.exists(filename):
                create_backup(filename)
            with open(temp_filename, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_filename, filename)
            logger.debug(f"💾 File saved successfully: {filename}")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"💥 Save error for '{filename}': {e}")
            if os.path.exists(temp_filename):
                os.remove(temp_filename)
            return False


def clean_config(data, base=None):
    """Merge allowed keys from `data` onto `base`, clamping numbers into sane ranges"""
    config = dict(base if base is not None else DEFAULT_CONFIG)
    allowed_keys = [
        'title',
        'logo_url',
        'ip_whitelist',
        'customer_service_url',
        'wheel_display_mode',
        'spin_duration_seconds',
        'extra_turns',
        'pointer_angle',
        'jitter_fraction',
    ]
    for key in allowed_keys:
        if key in data:
            config[key] = data[key]

    if config.get('wheel_display_mode') not in DISPLAY_MODES:
        raise ValueError(f"wheel_display_mode must be one of {', '.join(DISPLAY_MODES)}")
    if not isinstance(config.get('ip_whitelist'), list):
        raise ValueError("ip_whitelist must be a list of addresses")

    config['ip_whitelist'] = [str(ip).strip() for ip in config['ip_whitelist'] if str(ip).strip()]
    config['spin_duration_seconds'] = max(1.0, min(30.0, float(config['spin_duration_seconds'])))
    config['extra_turns'] = max(1, min(20, int(config['extra_turns'])))
    config['pointer_angle'] = float(config['pointer_angle']) % 360
    config['jitter_fraction'] = max(0.0, min(0.45, float(config['jitter_fraction'])))
    return config


def load_config(filename=None):
    filename = filename or CONFIG_FILE
    stored = load_json_file(filename, DEFAULT_CONFIG)
    try:
        config = clean_config(stored)
    except (TypeError, ValueError) as e:
        logger.error(f"💥 Invalid settings in '{filename}': {e}. Using defaults.")
        config = clean_config({})
    config['sectors'] = stored.get('sectors', DEFAULT_CONFIG['sectors'])
    return config


def save_config(config, filename=None):
    return save_json_file(filename or CONFIG_FILE, config)
