"""
Configuration
==============
Timing, geometry and palette constants plus the runtime config object.
"""

from dataclasses import dataclass
import logging
import os


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# Post-action delays (milliseconds)
MOVE_DELAY_MS = 250
TURN_DELAY_MS = 150
GOTO_DELAY_MS = 250

# Loop bound for repeat blocks
MAX_REPEAT = 50

# Fallback for say/think when seconds is missing or non-numeric
DEFAULT_BUBBLE_SECONDS = 1

# Transient indicator lifetimes (milliseconds)
FLASH_MS = 300
COLLISION_BANNER_MS = 3000

# Stage geometry
SPRITE_SIZE = 72
STAGE_WIDTH = 480
STAGE_HEIGHT = 360

# Terminal renderer
TARGET_FPS = 30
FRAME_TIME = 1.0 / TARGET_FPS
MIN_WIDTH = 60
MIN_HEIGHT = 20

# New sprite palette
SPRITE_COLORS = [
    '#ff6b6b', '#4ecdc4', '#45b7d1', '#f9ca24',
    '#6c5ce7', '#fd79a8', '#fdcb6e', '#55efc4',
]
SPRITE_NAMES = [
    'Star', 'Flash', 'Spark', 'Blaze', 'Glow',
    'Shine', 'Beam', 'Ray', 'Luna', 'Sol',
]

ENV_TIME_SCALE = 'SCRATCH_MINI_TIME_SCALE'
ENV_LOG_LEVEL = 'SCRATCH_MINI_LOG_LEVEL'


@dataclass
class RuntimeConfig:
    """
    Timing knobs for one stage.

    time_scale multiplies every suspension. 0 keeps the cooperative
    interleaving of sprites but makes delays instantaneous.
    """
    move_delay_ms: float = MOVE_DELAY_MS
    turn_delay_ms: float = TURN_DELAY_MS
    goto_delay_ms: float = GOTO_DELAY_MS
    flash_ms: float = FLASH_MS
    collision_banner_ms: float = COLLISION_BANNER_MS
    time_scale: float = 1.0
    log_level: str = 'WARNING'

    @classmethod
    def from_env(cls) -> 'RuntimeConfig':
        """Build a config, overriding defaults from the environment."""
        config = cls()
        raw_scale = os.environ.get(ENV_TIME_SCALE)
        if raw_scale:
            try:
                config.time_scale = max(0.0, float(raw_scale))
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", ENV_TIME_SCALE, raw_scale)
        raw_level = os.environ.get(ENV_LOG_LEVEL)
        if raw_level:
            config.log_level = raw_level.upper()
        return config

    def seconds(self, ms: float) -> float:
        """Convert a delay in milliseconds to scaled seconds."""
        return max(0.0, ms) / 1000.0 * self.time_scale
