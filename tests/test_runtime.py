import asyncio
import unittest

from scratch_mini.components import Block, Script, Sprite
from scratch_mini.config import RuntimeConfig
from scratch_mini.runtime import (
    RuntimeContext,
    StopToken,
    delay,
    run_block,
    run_script,
    run_sprite_scripts,
    seed_queue,
)

INSTANT = RuntimeConfig(time_scale=0)


def blk(block_id, block_type, children=None, **params):
    return Block(id=block_id, type=block_type, params=params, children=children)


def make_sprite(sprite_id, x=0.0, y=0.0, rotation=0.0, blocks=None):
    return Sprite(id=sprite_id, name=sprite_id, color="#ffffff", x=x, y=y, rotation=rotation,
                  scripts=[Script(id=f"{sprite_id}-script", blocks=blocks or [])])


class Events:
    """Collects every callback the runtime makes."""

    def __init__(self):
        self.updates = []
        self.says = []
        self.thinks = []
        self.collisions = []

    def context(self, sprites, **kwargs):
        return RuntimeContext(
            sprites=sprites,
            on_update=lambda s: self.updates.append((s.id, s.current_animation)),
            on_say=lambda s, text, ms: self.says.append((s.id, text, ms, s.bubble)),
            on_think=lambda s, text, ms: self.thinks.append((s.id, text, ms, s.bubble)),
            on_collision=lambda a, b: self.collisions.append((a.id, b.id)),
            config=INSTANT,
            **kwargs,
        )


class RunBlockTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.events = Events()
        self.sprite = make_sprite("s")
        self.ctx = self.events.context([self.sprite])

    async def test_move_follows_rotation(self):
        await run_block(self.sprite, blk("m", "move", steps=20), self.ctx)
        self.assertAlmostEqual(self.sprite.x, 20)
        self.assertAlmostEqual(self.sprite.y, 0)

        self.sprite.rotation = 90
        await run_block(self.sprite, blk("m", "move", steps=10), self.ctx)
        self.assertAlmostEqual(self.sprite.x, 20)
        self.assertAlmostEqual(self.sprite.y, 10)
        self.assertEqual(self.events.updates, [("s", "move"), ("s", "move")])

    async def test_move_bad_steps_uses_default(self):
        await run_block(self.sprite, blk("m", "move", steps="far"), self.ctx)
        self.assertAlmostEqual(self.sprite.x, 20)

    async def test_move_overflowing_steps_uses_default(self):
        await run_block(self.sprite, blk("m", "move", steps=10 ** 400), self.ctx)
        self.assertAlmostEqual(self.sprite.x, 20)

    async def test_turn_wraps(self):
        self.sprite.rotation = 350
        await run_block(self.sprite, blk("t", "turn", degrees=20), self.ctx)
        self.assertAlmostEqual(self.sprite.rotation, 10)

        await run_block(self.sprite, blk("t", "turn"), self.ctx)
        self.assertAlmostEqual(self.sprite.rotation, 100)

    async def test_goto_ignores_non_finite(self):
        self.sprite.x = 5
        self.sprite.y = 6
        await run_block(self.sprite, blk("g", "goto", x="abc", y=42), self.ctx)
        self.assertEqual((self.sprite.x, self.sprite.y), (5, 42))

    async def test_say_shows_then_dismisses_bubble(self):
        await run_block(self.sprite, blk("s1", "say", text="Hi", seconds=2), self.ctx)
        self.assertEqual(len(self.events.says), 2)
        sprite_id, text, ms, bubble = self.events.says[0]
        self.assertEqual((sprite_id, text, ms), ("s", "Hi", 2000))
        self.assertEqual((bubble.text, bubble.kind), ("Hi", "say"))
        self.assertEqual(self.events.says[1][1:3], ("", 0))
        self.assertIsNone(self.sprite.bubble)
        self.assertEqual(self.sprite.current_animation, "say")

    async def test_think_defaults(self):
        await run_block(self.sprite, blk("t1", "think"), self.ctx)
        _, text, ms, bubble = self.events.thinks[0]
        self.assertEqual((text, ms, bubble.kind), ("", 1000, "think"))
        self.assertEqual(self.events.says, [])

    async def test_unknown_type_only_updates(self):
        await run_block(self.sprite, blk("x", "dance"), self.ctx)
        self.assertEqual(self.events.updates, [("s", "dance")])
        self.assertEqual((self.sprite.x, self.sprite.y), (0, 0))

    async def test_stopped_is_noop(self):
        self.ctx.stop.set()
        await run_block(self.sprite, blk("m", "move"), self.ctx)
        self.assertEqual(self.events.updates, [])
        self.assertIsNone(self.sprite.current_animation)

    async def test_repeat_runs_body_in_order(self):
        body = [blk("m", "move", steps=10), blk("t", "turn", degrees=90)]
        await run_block(self.sprite, blk("r", "repeat", children=body, times=2), self.ctx)
        self.assertEqual(
            [anim for _, anim in self.events.updates],
            ["repeat", "move", "turn", "move", "turn"],
        )
        self.assertAlmostEqual(self.sprite.x, 10)
        self.assertAlmostEqual(self.sprite.y, 10)
        self.assertAlmostEqual(self.sprite.rotation, 180)

    async def test_repeat_clamps_times(self):
        body = [blk("t", "turn", degrees=1)]
        await run_block(self.sprite, blk("r", "repeat", children=body, times=75), self.ctx)
        self.assertAlmostEqual(self.sprite.rotation, 50)

    async def test_stop_mid_repeat_halts_at_child_boundary(self):
        def on_update(sprite):
            self.events.updates.append(sprite.current_animation)
            if len(self.events.updates) == 4:
                self.ctx.stop.set()

        self.ctx.on_update = on_update
        body = [blk("m", "move", steps=20)]
        await run_block(self.sprite, blk("r", "repeat", children=body, times=10), self.ctx)

        self.assertEqual(self.events.updates, ["repeat", "move", "move", "move"])
        self.assertAlmostEqual(self.sprite.x, 60)

    async def test_collision_after_block(self):
        other = make_sprite("o", x=100)
        self.ctx.sprites.append(other)
        await run_block(self.sprite, blk("m", "move", steps=40), self.ctx)

        self.assertEqual(self.events.collisions, [("s", "o")])
        self.assertTrue(self.sprite.flash and other.flash)
        self.assertEqual(self.ctx.collision_pairs, {"o-s"})
        # swap propagates an update for both sprites
        self.assertEqual(self.events.updates[-2:], [("s", None), ("o", "move")])

    async def test_missing_shared_state_is_created(self):
        ctx = RuntimeContext(sprites=[self.sprite, make_sprite("o", x=10)], config=INSTANT)
        await run_block(self.sprite, blk("t", "turn"), ctx)
        self.assertEqual(ctx.collision_pairs, {"o-s"})
        self.assertEqual(ctx.run_queues, {"s": [], "o": []})

    async def test_run_script_runs_unflattened(self):
        script = Script(id="sc", blocks=[
            blk("r", "repeat", children=[blk("m", "move", steps=5)], times=3),
            blk("t", "turn", degrees=45),
        ])
        await run_script(self.sprite, script, self.ctx)
        self.assertAlmostEqual(self.sprite.x, 15)
        self.assertAlmostEqual(self.sprite.rotation, 45)


class ScriptRunnerTests(unittest.IsolatedAsyncioTestCase):
    async def test_seed_overwrites_and_concatenates_scripts(self):
        sprite = make_sprite("s", blocks=[blk("a", "move")])
        sprite.scripts.append(Script(id="second", blocks=[
            blk("r", "repeat", children=[blk("b", "say")], times=2),
        ]))
        ctx = RuntimeContext(sprites=[sprite], run_queues={"s": [blk("old", "turn")]})

        queue = seed_queue(sprite, ctx)

        self.assertIs(ctx.run_queues["s"], queue)
        self.assertEqual([b.id for b in queue], ["a", "b", "b"])

    async def test_drains_queue_and_cleans_up(self):
        events = Events()
        sprite = make_sprite("s", blocks=[blk("m", "move", steps=10), blk("t", "turn")])
        ctx = events.context([sprite], run_queues={})

        await run_sprite_scripts(sprite, ctx)

        self.assertEqual(ctx.run_queues["s"], [])
        self.assertIsNone(sprite.current_animation)
        self.assertEqual(events.updates, [("s", "move"), ("s", "turn"), ("s", None)])

    async def test_stop_between_pops(self):
        events = Events()
        sprite = make_sprite("s", blocks=[
            blk("r", "repeat", children=[blk("m", "move", steps=20)], times=10),
        ])
        ctx = events.context([sprite], run_queues={})

        def on_update(s):
            events.updates.append(s.current_animation)
            if len(events.updates) == 3:
                ctx.stop.set()

        ctx.on_update = on_update
        await run_sprite_scripts(sprite, ctx)

        self.assertEqual(events.updates, ["move", "move", "move", None])
        self.assertEqual(len(ctx.run_queues["s"]), 7)
        self.assertAlmostEqual(sprite.x, 60)

    async def test_two_sprites_meet_head_on(self):
        events = Events()
        a = make_sprite("a", x=0, rotation=0, blocks=[blk("ma", "move", steps=20)])
        b = make_sprite("b", x=20, rotation=180, blocks=[blk("mb", "move", steps=20)])
        ctx = events.context([a, b], collision_pairs=set(), run_queues={})

        await asyncio.gather(run_sprite_scripts(a, ctx), run_sprite_scripts(b, ctx))

        self.assertEqual(events.collisions, [("a", "b")])
        self.assertTrue(a.flash)
        self.assertTrue(b.flash)
        self.assertEqual(ctx.run_queues, {"a": [], "b": []})
        self.assertAlmostEqual(a.x, 20)
        self.assertAlmostEqual(b.x, 0)

    async def test_swapped_motion_is_drained_by_receiver(self):
        events = Events()
        a = make_sprite("a", x=0, blocks=[blk("ma", "move", steps=5), blk("sa", "say", text="mine", seconds=0)])
        b = make_sprite("b", x=50, blocks=[
            blk("t1", "turn", degrees=5),
            blk("t2", "turn", degrees=10),
            blk("t3", "turn", degrees=20),
        ])
        ctx = events.context([a, b], collision_pairs=set(), run_queues={})

        await asyncio.gather(run_sprite_scripts(a, ctx), run_sprite_scripts(b, ctx))

        self.assertAlmostEqual(a.rotation, 30)
        self.assertAlmostEqual(b.rotation, 5)
        self.assertEqual([text for sid, text, _, _ in events.says if sid == "a"], ["mine", ""])


class StopTokenTests(unittest.IsolatedAsyncioTestCase):
    async def test_token(self):
        token = StopToken()
        self.assertFalse(token.is_set())
        token.set()
        self.assertTrue(token.is_set())
        token.clear()
        self.assertFalse(token.is_set())

    async def test_delay_scaled_to_zero(self):
        await asyncio.wait_for(delay(10_000, INSTANT), timeout=1)


if __name__ == "__main__":
    unittest.main()
