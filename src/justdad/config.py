import json
import logging
import os

DEFAULTS = {
    'max_retries': 3,
    'backoff_base': 2.0,
    'load_window_years': 1,
    'default_reminder_minutes': 30,
    'db_path': None,
    'log_level': 'INFO',
}


def _config_path():
    base = os.path.join(os.path.expanduser('~'), '.justdad')
    os.makedirs(base, exist_ok=True)
    return os.path.join(base, 'justdad_config.json')


def load_config(path: str = None) -> dict:
    path = path or _config_path()
    cfg = dict(DEFAULTS)
    if not os.path.exists(path):
        return cfg
    try:
        with open(path, 'r', encoding='utf-8') as f:
            stored = json.load(f)
    except (OSError, ValueError) as e:
        logging.warning(f"Config {path} unreadable, using defaults: {e}")
        return cfg
    if isinstance(stored, dict):
        cfg.update({k: v for k, v in stored.items() if v is not None or k == 'db_path'})
    return cfg


def save_config(cfg: dict, path: str = None):
    path = path or _config_path()
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(cfg, f, ensure_ascii=False, indent=2)
