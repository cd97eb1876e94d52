"""
Block Runtime
==============
Interpreter for single blocks and the per-sprite script runner.

Sprites run as cooperative asyncio tasks on one event loop. Only the
timed blocks (move, turn, goto, say, think) suspend; repeat and
collision detection run synchronously between suspensions.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set
import asyncio
import logging
import math

from .blocks import clamp_times, flatten_blocks, to_number, to_text
from .collisions import check_collisions_and_swap
from .components import (
    Block, Bubble, Script, Sprite, MOVE, TURN, GOTO, REPEAT, SAY, THINK
)
from .config import DEFAULT_BUBBLE_SECONDS, RuntimeConfig


logger = logging.getLogger(__name__)

SpriteCallback = Callable[[Sprite], None]
BubbleCallback = Callable[[Sprite, str, float], None]
PairCallback = Callable[[Sprite, Sprite], None]


def _ignore(*args):
    pass


class StopToken:
    """Process-wide stop flag shared by every runner of a session."""

    def __init__(self):
        self._stopped = False

    def set(self):
        self._stopped = True

    def clear(self):
        self._stopped = False

    def is_set(self) -> bool:
        return self._stopped


@dataclass
class RuntimeContext:
    """Everything a runner needs: the sprite set, callbacks and shared state."""
    sprites: List[Sprite]
    on_update: SpriteCallback = _ignore
    on_say: BubbleCallback = _ignore
    on_think: BubbleCallback = _ignore
    on_collision: Optional[PairCallback] = None
    stop: StopToken = field(default_factory=StopToken)
    config: RuntimeConfig = field(default_factory=RuntimeConfig)
    collision_pairs: Optional[Set[str]] = None
    run_queues: Optional[Dict[str, List[Block]]] = None

    def should_stop(self) -> bool:
        return self.stop.is_set()


async def delay(ms: float, config: Optional[RuntimeConfig] = None):
    """Suspend the current runner for ms (scaled by config.time_scale)."""
    config = config or RuntimeConfig()
    await asyncio.sleep(config.seconds(ms))


# =============================================================================
# BLOCK INTERPRETER
# =============================================================================

async def _run_looks(sprite: Sprite, block: Block, ctx: RuntimeContext, callback: BubbleCallback):
    text = to_text(block.params.get('text'))
    seconds = to_number(block.params.get('seconds'), DEFAULT_BUBBLE_SECONDS)
    ms = seconds * 1000
    ctx.on_update(sprite)
    sprite.bubble = Bubble(text=text, kind=block.type)
    callback(sprite, text, ms)
    await delay(ms, ctx.config)
    sprite.bubble = None
    callback(sprite, '', 0)


async def run_block(sprite: Sprite, block: Block, ctx: RuntimeContext):
    """
    Execute one block against a sprite, then check collisions.

    The animation label is set before acting so observers see it even
    for instantaneous blocks. A stop observed inside a repeat aborts
    the loop without running collision detection.
    """
    if ctx.should_stop():
        return
    sprite.current_animation = block.type
    params = block.params
    logger.debug("%s: %s %s", sprite.name, block.type, params)

    if block.type == MOVE:
        steps = to_number(params.get('steps'), 20)
        rad = math.radians(sprite.rotation)
        sprite.x += math.cos(rad) * steps
        sprite.y += math.sin(rad) * steps
        ctx.on_update(sprite)
        await delay(ctx.config.move_delay_ms, ctx.config)

    elif block.type == TURN:
        degrees = to_number(params.get('degrees'), 90)
        sprite.rotation = math.fmod(sprite.rotation + degrees, 360)
        ctx.on_update(sprite)
        await delay(ctx.config.turn_delay_ms, ctx.config)

    elif block.type == GOTO:
        sprite.x = to_number(params.get('x'), sprite.x)
        sprite.y = to_number(params.get('y'), sprite.y)
        ctx.on_update(sprite)
        await delay(ctx.config.goto_delay_ms, ctx.config)

    elif block.type == REPEAT:
        times = clamp_times(params.get('times'))
        children = block.children or []
        ctx.on_update(sprite)
        for _ in range(times):
            for child in children:
                await run_block(sprite, child, ctx)
                if ctx.should_stop():
                    return

    elif block.type == SAY:
        await _run_looks(sprite, block, ctx, ctx.on_say)

    elif block.type == THINK:
        await _run_looks(sprite, block, ctx, ctx.on_think)

    else:
        ctx.on_update(sprite)

    if ctx.collision_pairs is None:
        ctx.collision_pairs = set()
    if ctx.run_queues is None:
        ctx.run_queues = {}

    def on_swap(a: Sprite, b: Sprite):
        ctx.on_update(a)
        ctx.on_update(b)

    check_collisions_and_swap(
        ctx.sprites,
        ctx.collision_pairs,
        ctx.run_queues,
        on_swap=on_swap,
        on_collision=ctx.on_collision,
    )


async def run_script(sprite: Sprite, script: Script, ctx: RuntimeContext):
    """Run one script's top-level blocks in order, loops unexpanded."""
    for block in script.blocks:
        await run_block(sprite, block, ctx)
        if ctx.should_stop():
            return


# =============================================================================
# SCRIPT RUNNER
# =============================================================================

def seed_queue(sprite: Sprite, ctx: RuntimeContext) -> List[Block]:
    """Flatten every script of a sprite into its run-queue, replacing any old one."""
    queue: List[Block] = []
    for script in sprite.scripts:
        queue.extend(flatten_blocks(script.blocks))
    if ctx.run_queues is None:
        ctx.run_queues = {}
    ctx.run_queues[sprite.id] = queue
    logger.debug("%s: seeded %d blocks", sprite.name, len(queue))
    return queue


async def run_sprite_scripts(sprite: Sprite, ctx: RuntimeContext):
    """
    Drain a sprite's run-queue until it is empty or stop is signalled.

    The queue is looked up again on every pop because a collision swap
    may splice it while this runner is suspended.
    """
    seed_queue(sprite, ctx)
    while ctx.run_queues.get(sprite.id):
        if ctx.should_stop():
            break
        block = ctx.run_queues[sprite.id].pop(0)
        await run_block(sprite, block, ctx)

    sprite.current_animation = None
    ctx.on_update(sprite)
