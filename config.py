"""Duelsnake server configuration: defaults, JSON settings files and CLI overrides."""

import json
import logging
import os

logger = logging.getLogger("duelsnake")


class ServerConfig:
    grid_width: int = 20
    grid_height: int = 20
    tick_rate: float = 0.2  # Seconds per tick
    initial_snake_length: int = 4
    initial_apples: int = 2
    apple_spawn_attempts: int = 100
    finish_grace: float = 5.0  # Seconds a finished match stays queryable
    waiting_timeout: float = 0  # Seconds before an unstarted match is evicted (0 = never)
    bots: int = 0
    host: str = "0.0.0.0"
    port: int = 8765

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not hasattr(ServerConfig, key):
                raise AttributeError(f"Unknown config option: {key}")
            setattr(self, key, value)

    def to_dict(self) -> dict:
        return {
            "grid_width": self.grid_width,
            "grid_height": self.grid_height,
            "tick_rate": self.tick_rate,
            "initial_snake_length": self.initial_snake_length,
            "initial_apples": self.initial_apples,
            "finish_grace": self.finish_grace,
            "waiting_timeout": self.waiting_timeout,
            "bots": self.bots,
        }


def parse_grid_size(value: str) -> tuple[int, int]:
    """Parse 'WIDTHxHEIGHT' into a (width, height) tuple."""
    width, height = value.lower().split("x")
    return int(width), int(height)


def load_settings_file(path: str) -> dict:
    """Load settings from a JSON file. Missing or broken files yield {}."""
    try:
        with open(path, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {path}: {e}")
        return {}


def validate_settings(settings: dict) -> bool:
    """Validate that a settings dictionary has valid values. Returns True if valid."""
    if not settings:
        return False

    if "speed" in settings and (not isinstance(settings["speed"], (int, float)) or settings["speed"] <= 0):
        logger.error("Invalid config: 'speed' must be a positive number")
        return False
    if "grace" in settings and (not isinstance(settings["grace"], (int, float)) or settings["grace"] < 0):
        logger.error("Invalid config: 'grace' must be a non-negative number")
        return False
    if "waiting_timeout" in settings and (
        not isinstance(settings["waiting_timeout"], (int, float)) or settings["waiting_timeout"] < 0
    ):
        logger.error("Invalid config: 'waiting_timeout' must be a non-negative number")
        return False
    if "bots" in settings and (not isinstance(settings["bots"], int) or settings["bots"] < 0):
        logger.error("Invalid config: 'bots' must be a non-negative integer")
        return False

    if "grid_size" in settings:
        try:
            width, height = parse_grid_size(settings["grid_size"])
        except (ValueError, AttributeError):
            logger.error("Invalid config: 'grid_size' must be in format 'WIDTHxHEIGHT'")
            return False
        if width < 5 or height < 5:
            logger.error("Invalid config: grid dimensions must be at least 5x5")
            return False

    return True


def apply_settings(config: ServerConfig, settings: dict):
    """Apply a validated settings dictionary to a config object."""
    if "grid_size" in settings:
        config.grid_width, config.grid_height = parse_grid_size(settings["grid_size"])
    if "speed" in settings:
        config.tick_rate = settings["speed"]
    if "grace" in settings:
        config.finish_grace = settings["grace"]
    if "waiting_timeout" in settings:
        config.waiting_timeout = settings["waiting_timeout"]
    if "bots" in settings:
        config.bots = settings["bots"]


def apply_args(config: ServerConfig, args, settings: dict):
    """Apply CLI args over a settings file. CLI args win, then the file, then defaults."""
    if settings and validate_settings(settings):
        apply_settings(config, settings)
    elif settings:
        logger.warning("⚠️ Settings file has invalid values, using defaults")

    if args.grid_size is not None:
        try:
            width, height = parse_grid_size(args.grid_size)
        except ValueError:
            logger.error(f"Invalid grid size '{args.grid_size}'. Keeping {config.grid_width}x{config.grid_height}.")
        else:
            if width >= 5 and height >= 5:
                config.grid_width, config.grid_height = width, height
            else:
                logger.error("Grid dimensions must be at least 5x5, ignoring --grid-size")
    if args.speed is not None:
        config.tick_rate = args.speed
    if args.grace is not None:
        config.finish_grace = args.grace
    if args.waiting_timeout is not None:
        config.waiting_timeout = args.waiting_timeout
    if args.bots is not None:
        config.bots = args.bots


def default_settings_path() -> str:
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), "server-settings.json")
