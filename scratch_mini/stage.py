"""
Stage
======
Sprite roster, editor-facing script edits and the "run all" orchestrator.

The stage owns the editable sprites. A run works on deep clones of them
and copies pose and animation state back through the update callback,
so the editable scripts are never touched by a running session.
"""

from dataclasses import replace
from typing import Callable, Dict, List, Optional
import asyncio
import logging
import random

from .blocks import (
    append_block, clone_blocks, create_block, new_id, remove_block,
    update_block_params
)
from .components import Block, Bubble, ParamValue, Script, Sprite
from .config import (
    RuntimeConfig, SPRITE_COLORS, SPRITE_NAMES, SPRITE_SIZE
)
from .errors import RunInProgressError, StageError
from .runtime import RuntimeContext, StopToken, run_sprite_scripts


logger = logging.getLogger(__name__)

BANNER_TIMER = 'banner'


# =============================================================================
# SPRITE FACTORY
# =============================================================================

def create_sprite(name: str, color: str, x: float, y: float) -> Sprite:
    """Create a sprite with one empty primary script."""
    return Sprite(
        id=new_id(),
        name=name,
        color=color,
        x=x,
        y=y,
        rotation=0.0,
        width=SPRITE_SIZE,
        height=SPRITE_SIZE,
        scripts=[Script(id=new_id(), blocks=[])],
    )


def initial_sprites() -> List[Sprite]:
    """The default roster shown on a fresh stage."""
    return [
        create_sprite('Comet', '#ffbf69', 60, 60),
        create_sprite('Bolt', '#40c9ff', 180, 160),
        create_sprite('Nova', '#a29bfe', 320, 80),
    ]


def sprite_snapshot(sprite: Sprite) -> dict:
    """JSON-friendly view of a sprite's runtime state."""
    return {
        'id': sprite.id,
        'name': sprite.name,
        'color': sprite.color,
        'x': round(sprite.x, 3),
        'y': round(sprite.y, 3),
        'rotation': round(sprite.rotation, 3),
        'current_animation': sprite.current_animation,
        'bubble': {'text': sprite.bubble.text, 'kind': sprite.bubble.kind} if sprite.bubble else None,
        'flash': sprite.flash,
    }


# =============================================================================
# TIMERS
# =============================================================================

class TimerRegistry:
    """
    Named, cancellable expiry tasks tied to one stage.

    Scheduling a key that is already pending replaces the old timer, so
    a stale expiry can never clear a newer bubble or flash.
    """

    def __init__(self, config: RuntimeConfig):
        self.config = config
        self._tasks: Dict[str, asyncio.Task] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def schedule(self, key: str, ms: float, callback: Callable[[], None]) -> asyncio.Task:
        """Run callback after ms (scaled). Must be called inside the event loop."""
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(self._expire(key, ms, callback))
        self._tasks[key] = task
        logger.debug("Timer %s scheduled for %.0fms", key, ms)
        return task

    async def _expire(self, key: str, ms: float, callback: Callable[[], None]):
        await asyncio.sleep(self.config.seconds(ms))
        self._tasks.pop(key, None)
        callback()

    def cancel(self, key: str):
        task = self._tasks.pop(key, None)
        if task is not None:
            task.cancel()

    def cancel_prefix(self, prefix: str):
        """Cancel every timer whose key starts with prefix."""
        for key in [k for k in self._tasks if k.startswith(prefix)]:
            self.cancel(key)

    def cancel_all(self):
        for key in list(self._tasks):
            self.cancel(key)


# =============================================================================
# STAGE
# =============================================================================

class Stage:
    """
    Sprite roster plus the run-all orchestrator.

    Editing methods are disabled while a run is active and return False
    instead of applying the edit.
    """

    def __init__(self, sprites: Optional[List[Sprite]] = None,
                 config: Optional[RuntimeConfig] = None,
                 rng: Optional[random.Random] = None):
        self.sprites: List[Sprite] = list(sprites) if sprites is not None else initial_sprites()
        self.selected_id: str = self.sprites[0].id if self.sprites else ''
        self.config = config or RuntimeConfig()
        self.rng = rng or random.Random()
        self.is_running = False
        self.collision_message: Optional[str] = None
        self.stop = StopToken()
        self.timers = TimerRegistry(self.config)
        self.context: Optional[RuntimeContext] = None

    # -------------------------------------------------------------------------
    # Roster
    # -------------------------------------------------------------------------

    def get_sprite(self, sprite_id: str) -> Optional[Sprite]:
        for sprite in self.sprites:
            if sprite.id == sprite_id:
                return sprite
        return None

    @property
    def selected(self) -> Optional[Sprite]:
        """Currently selected sprite, falling back to the first one."""
        return self.get_sprite(self.selected_id) or (self.sprites[0] if self.sprites else None)

    def select(self, sprite_id: str):
        if self.get_sprite(sprite_id) is None:
            raise StageError(f'Unknown sprite: {sprite_id}')
        self.selected_id = sprite_id

    def add_sprite(self) -> Sprite:
        """Add a sprite with an unused palette color and a unique name."""
        used_colors = {sprite.color for sprite in self.sprites}
        available = [c for c in SPRITE_COLORS if c not in used_colors]
        color = available[0] if available else self.rng.choice(SPRITE_COLORS)

        base_name = self.rng.choice(SPRITE_NAMES)
        existing = {sprite.name for sprite in self.sprites}
        name = base_name
        counter = 1
        while name in existing:
            name = f'{base_name}{counter}'
            counter += 1

        x = 50 + self.rng.random() * 200
        y = 50 + self.rng.random() * 150
        sprite = create_sprite(name, color, x, y)
        self.sprites.append(sprite)
        self.selected_id = sprite.id
        logger.info("Added sprite %s at (%.0f, %.0f)", name, x, y)
        return sprite

    def delete_sprite(self, sprite_id: str):
        """Remove a sprite. The last remaining sprite cannot be deleted."""
        if len(self.sprites) <= 1:
            logger.warning("Refusing to delete the last sprite")
            raise StageError('You must have at least one sprite!')
        sprite = self.get_sprite(sprite_id)
        if sprite is None:
            raise StageError(f'Unknown sprite: {sprite_id}')
        self.sprites.remove(sprite)
        if self.selected_id == sprite_id:
            self.selected_id = self.sprites[0].id
        logger.info("Deleted sprite %s", sprite.name)

    # -------------------------------------------------------------------------
    # Script editing (first script only)
    # -------------------------------------------------------------------------

    def _update_sprite_scripts(self, sprite_id: str,
                               transform: Callable[[List[Block]], List[Block]]) -> bool:
        if self.is_running:
            logger.warning("Ignoring script edit on %s during a run", sprite_id)
            return False
        sprite = self.get_sprite(sprite_id)
        if sprite is None:
            return False

        created = not sprite.scripts
        primary = sprite.scripts[0] if sprite.scripts else Script(id=new_id(), blocks=[])
        next_blocks = transform(primary.blocks)
        if not created and next_blocks is primary.blocks:
            return False

        sprite.scripts = [replace(primary, blocks=next_blocks)] + sprite.scripts[1:]
        return True

    def add_block(self, sprite_id: str, block_type: str,
                  parent_id: Optional[str] = None) -> Optional[Block]:
        """Create a block and append it to a sprite's first script."""
        block = create_block(block_type)
        if self._update_sprite_scripts(sprite_id, lambda blocks: append_block(blocks, parent_id, block)):
            return block
        return None

    def update_block_params(self, sprite_id: str, block_id: str,
                            params: Dict[str, ParamValue]) -> bool:
        return self._update_sprite_scripts(
            sprite_id, lambda blocks: update_block_params(blocks, block_id, params)
        )

    def remove_block(self, sprite_id: str, block_id: str) -> bool:
        return self._update_sprite_scripts(
            sprite_id, lambda blocks: remove_block(blocks, block_id)
        )

    # -------------------------------------------------------------------------
    # Presentation sync
    # -------------------------------------------------------------------------

    def _sync_sprite(self, runtime_sprite: Sprite):
        """Copy a working sprite's pose and indicators onto the stage sprite."""
        sprite = self.get_sprite(runtime_sprite.id)
        if sprite is None:
            return
        sprite.x = runtime_sprite.x
        sprite.y = runtime_sprite.y
        sprite.rotation = runtime_sprite.rotation
        sprite.current_animation = runtime_sprite.current_animation
        sprite.flash = runtime_sprite.flash

        if runtime_sprite.flash:
            def expire_flash():
                runtime_sprite.flash = False
                sprite.flash = False
            self.timers.schedule(f'flash:{sprite.id}', self.config.flash_ms, expire_flash)

    def _set_bubble(self, runtime_sprite: Sprite, text: str, kind: str, ms: float):
        sprite = self.get_sprite(runtime_sprite.id)
        if sprite is None:
            return
        sprite.bubble = Bubble(text=text, kind=kind) if text else None

        key = f'bubble:{sprite.id}'
        self.timers.cancel(key)
        if text and ms > 0:
            def expire_bubble():
                sprite.bubble = None
            self.timers.schedule(key, ms, expire_bubble)

    def _on_collision(self, a: Sprite, b: Sprite):
        self.collision_message = f'Collision! {a.name} ↔ {b.name} - Animations swapped!'
        logger.info("Collision between %s and %s", a.name, b.name)

        def expire_banner():
            self.collision_message = None
        self.timers.schedule(BANNER_TIMER, self.config.collision_banner_ms, expire_banner)

    # -------------------------------------------------------------------------
    # Run / stop
    # -------------------------------------------------------------------------

    def _working_copy(self) -> List[Sprite]:
        return [
            replace(
                sprite,
                scripts=[replace(script, blocks=clone_blocks(script.blocks)) for script in sprite.scripts],
                bubble=None,
                flash=False,
            )
            for sprite in self.sprites
        ]

    async def run_all(self):
        """
        Run every sprite's scripts concurrently until all finish or stop.

        Success, failure and stop all end in the same cleanup: the stop
        flag is reset and animation/bubble/flash are cleared on every
        sprite. If one runner raises, the others are cancelled before the
        error propagates.
        """
        if self.is_running:
            raise RunInProgressError('A run is already in progress')

        self.stop.clear()
        self.timers.cancel_all()
        self.is_running = True
        working = self._working_copy()
        ctx = RuntimeContext(
            sprites=working,
            on_update=self._sync_sprite,
            on_say=lambda s, text, ms: self._set_bubble(s, text, 'say', ms),
            on_think=lambda s, text, ms: self._set_bubble(s, text, 'think', ms),
            on_collision=self._on_collision,
            stop=self.stop,
            config=self.config,
            collision_pairs=set(),
            run_queues={},
        )
        self.context = ctx
        logger.info("Run started with %d sprites", len(working))

        loop = asyncio.get_running_loop()
        tasks = [loop.create_task(run_sprite_scripts(sprite, ctx)) for sprite in working]
        outcome = 'finished'
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Siblings must not outlive a failed run
            outcome = 'failed'
            self.stop.set()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            if outcome == 'finished' and self.stop.is_set():
                outcome = 'stopped'
            self.stop.clear()
            self.is_running = False
            self.context = None
            for sprite in self.sprites:
                sprite.current_animation = None
                sprite.bubble = None
                sprite.flash = False
            self.timers.cancel_prefix('flash:')
            self.timers.cancel_prefix('bubble:')
            logger.info("Run %s", outcome)

    def stop_all(self):
        """Signal every runner to stop and clear all transient indicators."""
        if not self.is_running:
            return
        self.stop.set()
        self.timers.cancel_all()
        self.collision_message = None
        for sprite in self.sprites:
            sprite.current_animation = None
            sprite.bubble = None
            sprite.flash = False
        logger.info("Stop requested")
