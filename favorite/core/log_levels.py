STANDARD_LOG_LEVELS = {
    "DEBUG": {"icon": "🕸️", "loguru_color": "<fg #DC5F00>"},
    "INFO": {"icon": "📰", "loguru_color": "<fg #FC5F39>"},
    "WARNING": {"icon": "⚠️", "loguru_color": "<fg #DC5F00>"},
    "ERROR": {"icon": "❌", "loguru_color": "<fg #ff0000>"},
    "CRITICAL": {"icon": "💀", "loguru_color": "<fg #ff0000>"},
}

CUSTOM_LOG_LEVELS = {
    "FAVORITE": {
        "icon": "⭐",
        "loguru_color": "<fg #7871d6>",
        "no": 50,
    },
    "API": {"icon": "👾", "loguru_color": "<fg #006989>", "no": 45},
    "DATABASE": {
        "icon": "💾",
        "loguru_color": "<fg #5aa5d9>",
        "no": 32,
    },
    "CRAWLER": {
        "icon": "🏭",
        "loguru_color": "<fg #5fba64>",
        "no": 25,
    },
}

