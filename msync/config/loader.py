import yaml
from pathlib import Path
from .models import AppConfig

def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # User-supplied formats are merged over the built-in table, not replacing it
    transcode = data.get("transcode")
    if isinstance(transcode, dict) and isinstance(transcode.get("formats"), dict):
        defaults = {
            name: profile.model_dump()
            for name, profile in AppConfig().transcode.formats.items()
        }
        defaults.update(transcode["formats"])
        transcode["formats"] = defaults

    return AppConfig(**data)
