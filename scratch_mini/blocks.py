"""
Block Trees
============
Pure editing operations over block sequences and the queue flattener.

Edits never mutate their input. A sequence (or subtree) that did not
change is returned as the same object, so callers can compare by
identity to skip work.
"""

from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple
import logging
import math
import uuid

from .components import (
    Block, ParamValue, MOVE, TURN, GOTO, REPEAT, SAY, THINK
)
from .config import MAX_REPEAT


logger = logging.getLogger(__name__)


# =============================================================================
# IDENTIFIERS
# =============================================================================

def _uuid_factory() -> str:
    return str(uuid.uuid4())


_id_factory: Callable[[], str] = _uuid_factory


def new_id() -> str:
    """Return a fresh identifier from the active id factory."""
    return _id_factory()


def set_id_factory(factory: Optional[Callable[[], str]]) -> None:
    """Install an id factory. None restores the uuid4 default."""
    global _id_factory
    _id_factory = factory if factory is not None else _uuid_factory


# =============================================================================
# DEFAULTS
# =============================================================================
# Every block is created with its full parameter set.

BLOCK_DEFAULTS: Dict[str, Dict[str, ParamValue]] = {
    MOVE: {'steps': 20},
    TURN: {'degrees': 90},
    GOTO: {'x': 0, 'y': 0},
    REPEAT: {'times': 2},
    SAY: {'text': 'Hello!', 'seconds': 2},
    THINK: {'text': 'Hmm...', 'seconds': 2},
}


def create_block(block_type: str) -> Block:
    """Create a block of the given type with a fresh id and default params."""
    block = Block(
        id=new_id(),
        type=block_type,
        params=dict(BLOCK_DEFAULTS.get(block_type, {})),
    )
    if block_type == REPEAT:
        block.children = []
    return block


# =============================================================================
# PARAMETER COERCION
# =============================================================================

def to_number(value: ParamValue, default: Optional[float] = None) -> Optional[float]:
    """
    Read a numeric parameter.

    Strings are parsed; anything non-numeric or non-finite yields the
    default instead of an error.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    return number


def clamp_times(value: ParamValue) -> int:
    """Loop count as an integer in [0, MAX_REPEAT]."""
    times = to_number(value, 0.0)
    return max(0, min(MAX_REPEAT, int(times)))


def to_text(value: ParamValue) -> str:
    """Read a text parameter. Integral floats print without a fraction."""
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# =============================================================================
# CLONING
# =============================================================================

def clone_block(block: Block) -> Block:
    """Deep-copy a block and all of its descendants."""
    return Block(
        id=block.id,
        type=block.type,
        params=dict(block.params),
        children=clone_blocks(block.children) if block.children is not None else None,
    )


def clone_blocks(blocks: List[Block]) -> List[Block]:
    """Deep-copy a block sequence."""
    return [clone_block(block) for block in blocks]


# =============================================================================
# TREE EDITS
# =============================================================================

def _append(blocks: List[Block], parent_id: str, block: Block) -> Tuple[List[Block], bool]:
    result = []
    changed = False
    for current in blocks:
        if not changed and current.children is not None:
            if current.id == parent_id:
                current = replace(current, children=current.children + [block])
                changed = True
            else:
                children, changed = _append(current.children, parent_id, block)
                if changed:
                    current = replace(current, children=children)
        result.append(current)
    return (result, True) if changed else (blocks, False)


def append_block(blocks: List[Block], parent_id: Optional[str], block: Block) -> List[Block]:
    """
    Append a block under a parent.

    With no parent the block goes to the end of the root sequence.
    Otherwise it is appended to the children of the matching repeat
    block; an unknown parent (or one that cannot hold children) leaves
    the tree untouched.
    """
    if not parent_id:
        return blocks + [block]

    result, changed = _append(blocks, parent_id, block)
    if not changed:
        logger.debug("append_block: no container with id %s", parent_id)
    return result


def _update(blocks: List[Block], block_id: str, params: Dict[str, ParamValue]) -> Tuple[List[Block], bool]:
    result = []
    changed = False
    for current in blocks:
        if not changed:
            if current.id == block_id:
                current = replace(current, params={**current.params, **params})
                changed = True
            elif current.children is not None:
                children, changed = _update(current.children, block_id, params)
                if changed:
                    current = replace(current, children=children)
        result.append(current)
    return (result, True) if changed else (blocks, False)


def update_block_params(blocks: List[Block], block_id: str, params: Dict[str, ParamValue]) -> List[Block]:
    """Merge params into the matching block. Unpatched keys are kept."""
    result, _ = _update(blocks, block_id, params)
    return result


def _remove(blocks: List[Block], block_id: str) -> Tuple[List[Block], bool]:
    result = []
    changed = False
    for current in blocks:
        if not changed:
            if current.id == block_id:
                changed = True
                continue
            if current.children is not None:
                children, changed = _remove(current.children, block_id)
                if changed:
                    current = replace(current, children=children)
        result.append(current)
    return (result, True) if changed else (blocks, False)


def remove_block(blocks: List[Block], block_id: str) -> List[Block]:
    """Delete the matching block (and its subtree) wherever it lives."""
    result, _ = _remove(blocks, block_id)
    return result


# =============================================================================
# FLATTENING
# =============================================================================

def flatten_blocks(blocks: List[Block]) -> List[Block]:
    """
    Expand a block sequence into a flat run-queue.

    Repeat blocks are replaced by their flattened body repeated
    clamp_times(times) times; the result holds no repeat nodes.
    """
    result: List[Block] = []
    for block in blocks:
        if block.type == REPEAT:
            times = clamp_times(block.params.get('times'))
            body = flatten_blocks(block.children or [])
            for _ in range(times):
                result.extend(body)
        else:
            result.append(block)
    return result
