"""
Collision System
=================
Pairwise AABB overlap between sprites and the run-queue swap it triggers.

All mutation of the shared collision-pair set and run-queues happens
here, synchronously. Under the cooperative scheduler this function is
never re-entered; a threaded caller must serialize calls to it.
"""

from typing import Callable, Dict, List, MutableSet, Optional, Sequence, Tuple
import logging

from .components import Block, Sprite, is_looks


logger = logging.getLogger(__name__)

SpritePairCallback = Callable[[Sprite, Sprite], None]


# =============================================================================
# COLLISION UTILITIES
# =============================================================================

def aabb_overlap(a: Sprite, b: Sprite) -> bool:
    """Check AABB overlap between two sprites. Touching edges count."""
    return not (
        a.right < b.x or
        b.right < a.x or
        a.bottom < b.y or
        b.bottom < a.y
    )


def pair_key(a: Sprite, b: Sprite) -> str:
    """Order-independent key for a sprite pair."""
    return '-'.join(sorted((a.id, b.id)))


def partition_queue(queue: Sequence[Block]) -> Tuple[List[Block], List[Block]]:
    """Split a run-queue into (motion, looks) entries, keeping order."""
    motion = [block for block in queue if not is_looks(block.type)]
    looks = [block for block in queue if is_looks(block.type)]
    return motion, looks


def _replace_queue(run_queues: Dict[str, List[Block]], sprite_id: str, blocks: List[Block]):
    """Replace a queue's contents in place so runners holding it see the swap."""
    queue = run_queues.get(sprite_id)
    if queue is None:
        run_queues[sprite_id] = blocks
    else:
        queue[:] = blocks


# =============================================================================
# DETECT AND SWAP
# =============================================================================

def swap_queues(a: Sprite, b: Sprite, run_queues: Dict[str, List[Block]]):
    """
    Exchange the motion-class entries of two sprites' queues.

    Each sprite keeps its own say/think entries, placed after the
    motion entries it receives.
    """
    motion_a, looks_a = partition_queue(run_queues.get(a.id, []))
    motion_b, looks_b = partition_queue(run_queues.get(b.id, []))
    _replace_queue(run_queues, a.id, motion_b + looks_a)
    _replace_queue(run_queues, b.id, motion_a + looks_b)


def swap_animations(a: Sprite, b: Sprite) -> bool:
    """
    Exchange current animation labels unless either sprite is mid-looks.

    Returns True if the labels were exchanged.
    """
    if is_looks(a.current_animation) or is_looks(b.current_animation):
        return False
    a.current_animation, b.current_animation = b.current_animation, a.current_animation
    return True


def check_collisions_and_swap(
    sprites: Sequence[Sprite],
    collision_pairs: MutableSet[str],
    run_queues: Dict[str, List[Block]],
    on_swap: Optional[SpritePairCallback] = None,
    on_collision: Optional[SpritePairCallback] = None,
) -> int:
    """
    Test every sprite pair and swap the first time each pair overlaps.

    A pair fires at most once per run: its key stays in collision_pairs
    until a new run starts. Returns the number of new collisions.
    """
    fired = 0
    for i in range(len(sprites)):
        for j in range(i + 1, len(sprites)):
            a = sprites[i]
            b = sprites[j]
            key = pair_key(a, b)
            if key in collision_pairs or not aabb_overlap(a, b):
                continue

            collision_pairs.add(key)
            swap_queues(a, b, run_queues)

            swapped = swap_animations(a, b)
            a.flash = True
            b.flash = True
            fired += 1
            logger.debug(
                "Swapped queues %s <-> %s (animations swapped: %s)",
                a.name, b.name, swapped
            )

            if on_swap:
                on_swap(a, b)
            if on_collision:
                on_collision(a, b)
    return fired
