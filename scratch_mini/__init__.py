from .blocks import (
    append_block,
    clone_blocks,
    create_block,
    flatten_blocks,
    remove_block,
    update_block_params,
)
from .collisions import check_collisions_and_swap
from .components import Block, Bubble, Script, Sprite
from .config import RuntimeConfig
from .errors import RunInProgressError, ScratchMiniError, StageError
from .runtime import RuntimeContext, StopToken, run_block, run_sprite_scripts
from .stage import Stage, create_sprite

__all__ = [
    "Block",
    "Bubble",
    "RunInProgressError",
    "RuntimeConfig",
    "RuntimeContext",
    "ScratchMiniError",
    "Script",
    "Sprite",
    "Stage",
    "StageError",
    "StopToken",
    "append_block",
    "check_collisions_and_swap",
    "clone_blocks",
    "create_block",
    "create_sprite",
    "flatten_blocks",
    "remove_block",
    "run_block",
    "run_sprite_scripts",
    "update_block_params",
]
