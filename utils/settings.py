from flask import current_app

from models import db
from models.setting import Setting

# settings the provider may change at runtime, mapped to their Config defaults
TUNABLE_SETTINGS = {
    "tight_mode_days": "TIGHT_MODE_DAYS",
    "refund_threshold_hours": "REFUND_THRESHOLD_HOURS",
}


def get_int_setting(key: str) -> int:
    row = db.session.get(Setting, key)
    if row is not None:
        try:
            return int(row.value)
        except ValueError:
            current_app.logger.warning("Ignoring non-integer setting %s=%r", key, row.value)
    return int(current_app.config[TUNABLE_SETTINGS[key]])


def all_settings() -> dict:
    return {key: get_int_setting(key) for key in TUNABLE_SETTINGS}


def set_setting(key: str, value) -> None:
    row = db.session.get(Setting, key)
    if row is None:
        db.session.add(Setting(key=key, value=str(value)))
    else:
        row.value = str(value)
