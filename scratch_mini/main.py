#!/usr/bin/env python3
"""
SCRATCH MINI - Block Scripts in Your Terminal
==============================================
Every sprite runs its block script at the same time. When two sprites
collide, their remaining motion blocks swap while speech stays put.

Controls:
    R       - Run all sprites
    S       - Stop
    Q/ESC   - Quit
"""

from typing import List, Optional
import argparse
import asyncio
import json
import logging
import sys

from blessed import Terminal

from .blocks import append_block, create_block, update_block_params
from .components import Block, MOVE, TURN, GOTO, REPEAT, SAY, THINK
from .config import FRAME_TIME, MIN_HEIGHT, MIN_WIDTH, RuntimeConfig
from .engine import StageRenderer
from .stage import Stage, sprite_snapshot


logger = logging.getLogger(__name__)


# =============================================================================
# DEMO SCRIPTS
# =============================================================================

def _block(block_type: str, **params) -> Block:
    block = create_block(block_type)
    return update_block_params([block], block.id, params)[0] if params else block


def build_demo_stage(config: Optional[RuntimeConfig] = None) -> Stage:
    """Default roster with scripts that make Comet and Bolt collide."""
    stage = Stage(config=config)
    comet, bolt, nova = stage.sprites

    loop = _block(REPEAT, times=4)
    blocks: List[Block] = append_block([], None, _block(SAY, text='Here I go!', seconds=1))
    blocks = append_block(blocks, None, loop)
    blocks = append_block(blocks, loop.id, _block(MOVE, steps=25))
    blocks = append_block(blocks, None, _block(TURN, degrees=90))
    blocks = append_block(blocks, None, _block(MOVE, steps=40))
    comet.scripts[0].blocks = blocks

    blocks = append_block([], None, _block(GOTO, x=150, y=120))
    blocks = append_block(blocks, None, _block(THINK, text='Hmm...', seconds=1))
    blocks = append_block(blocks, None, _block(MOVE, steps=60))
    bolt.scripts[0].blocks = blocks

    loop = _block(REPEAT, times=8)
    blocks = append_block([], None, loop)
    blocks = append_block(blocks, loop.id, _block(TURN, degrees=45))
    blocks = append_block(blocks, None, _block(SAY, text='Wheee!', seconds=1))
    nova.scripts[0].blocks = blocks

    return stage


# =============================================================================
# RUN MODES
# =============================================================================

def configure_logging(level: str, log_file: Optional[str], quiet: bool = False):
    """Set up root logging. quiet drops output when no file is given."""
    if log_file:
        logging.basicConfig(filename=log_file, level=level,
                            format='%(asctime)s %(name)s %(levelname)s %(message)s')
    elif quiet:
        logging.getLogger().addHandler(logging.NullHandler())
    else:
        logging.basicConfig(stream=sys.stderr, level=level,
                            format='%(levelname)s %(name)s: %(message)s')


async def run_headless(stage: Stage) -> List[dict]:
    """Run every sprite once with no display and return the final snapshots."""
    logger.info("Headless run with time scale %s", stage.config.time_scale)
    await stage.run_all()
    return [sprite_snapshot(sprite) for sprite in stage.sprites]


async def run_terminal(term: Terminal, stage: Stage):
    """Interactive loop: draw the stage at a fixed rate and handle keys."""
    renderer = StageRenderer(term, stage)
    run_task: Optional[asyncio.Task] = None

    print(term.home + term.clear, end='', flush=True)
    while True:
        key = term.inkey(timeout=0)
        while key:
            if key.name == 'KEY_ESCAPE' or (not key.is_sequence and key.lower() == 'q'):
                stage.stop_all()
                if run_task is not None:
                    await run_task
                return
            if not key.is_sequence and key.lower() == 'r' and not stage.is_running:
                run_task = asyncio.create_task(stage.run_all())
            elif not key.is_sequence and key.lower() == 's':
                stage.stop_all()
            key = term.inkey(timeout=0)

        if (term.width, term.height) != (renderer.buffer.width, renderer.buffer.height):
            renderer.resize(term.width, term.height)
            print(term.home + term.clear, end='', flush=True)

        if run_task is not None and run_task.done():
            # Re-raises a run that failed instead of dropping it
            run_task.result()
            run_task = None

        output = renderer.render()
        if output:
            print(output, end='', flush=True)
        await asyncio.sleep(FRAME_TIME)


# =============================================================================
# CLI
# =============================================================================

def _cmd_run(args: argparse.Namespace) -> int:
    config = RuntimeConfig.from_env()
    if args.time_scale is not None:
        config.time_scale = max(0.0, args.time_scale)
    level = (args.log_level or config.log_level).upper()
    stage = build_demo_stage(config)

    if args.headless:
        configure_logging(level, args.log_file)
        snapshot = asyncio.run(run_headless(stage))
        print(json.dumps({'sprites': snapshot}, indent=2))
        return 0

    term = Terminal()
    if term.width < MIN_WIDTH or term.height < MIN_HEIGHT:
        print(
            f'Terminal too small: {term.width}x{term.height}. '
            f'Minimum: {MIN_WIDTH}x{MIN_HEIGHT}'
        )
        return 1

    configure_logging(level, args.log_file, quiet=True)
    with term.fullscreen(), term.cbreak(), term.hidden_cursor():
        asyncio.run(run_terminal(term, stage))
    print(term.normal, end='', flush=True)
    return 0


def _cmd_sprites(args: argparse.Namespace) -> int:
    stage = build_demo_stage()
    print(json.dumps([sprite_snapshot(sprite) for sprite in stage.sprites], indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='scratch-mini',
        description='Concurrent block scripts for sprites, with collision swaps.',
    )
    sp = p.add_subparsers(dest='command', required=True)

    run_p = sp.add_parser('run', help='Run the demo stage')
    run_p.add_argument('--headless', action='store_true', help='Run without a display and print final state')
    run_p.add_argument('--time-scale', type=float, help='Delay multiplier (0 = instant)')
    run_p.add_argument('--log-level', help='Logging level (default WARNING)')
    run_p.add_argument('--log-file', help='Write logs to this file')
    run_p.set_defaults(func=_cmd_run)

    sprites_p = sp.add_parser('sprites', help='Print the demo sprites as JSON')
    sprites_p.set_defaults(func=_cmd_sprites)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    raise SystemExit(main())
