"""
Component Definitions
======================
Blocks, scripts and sprites are plain dataclasses with no behavior.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .config import SPRITE_SIZE


# =============================================================================
# BLOCK VOCABULARY
# =============================================================================

MOVE = 'move'
TURN = 'turn'
GOTO = 'goto'
REPEAT = 'repeat'
SAY = 'say'
THINK = 'think'

BLOCK_TYPES = (MOVE, TURN, GOTO, REPEAT, SAY, THINK)

# Looks actions stay bound to their sprite when queues swap
LOOKS_TYPES = frozenset({SAY, THINK})

ParamValue = Union[int, float, str, None]


def is_looks(block_type: Optional[str]) -> bool:
    """Check if a block type is a speech/thought action."""
    return block_type in LOOKS_TYPES


# =============================================================================
# SCRIPT COMPONENTS
# =============================================================================

@dataclass
class Block:
    """A single command node. Only repeat blocks carry children."""
    id: str
    type: str
    params: Dict[str, ParamValue] = field(default_factory=dict)
    children: Optional[List['Block']] = None


@dataclass
class Script:
    """Top-level block sequence owned by a sprite."""
    id: str
    blocks: List[Block] = field(default_factory=list)


# =============================================================================
# SPRITE COMPONENTS
# =============================================================================

@dataclass
class Bubble:
    """Speech or thought bubble shown while a looks block runs."""
    text: str
    kind: str  # 'say' or 'think'


@dataclass
class Sprite:
    """Stage actor with pose, fixed AABB size and scripts."""
    id: str
    name: str
    color: str
    x: float = 0.0
    y: float = 0.0
    rotation: float = 0.0
    width: float = SPRITE_SIZE
    height: float = SPRITE_SIZE
    scripts: List[Script] = field(default_factory=list)
    current_animation: Optional[str] = None
    bubble: Optional[Bubble] = None
    flash: bool = False

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height
