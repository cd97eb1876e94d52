"""
Rendering Engine
=================
Double-buffered terminal renderer for the stage.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from blessed import Terminal

from .components import Sprite
from .config import STAGE_HEIGHT, STAGE_WIDTH
from .stage import Stage


# ANSI 256 color constants
NEON_CYAN = 51
NEON_MAGENTA = 201
NEON_YELLOW = 226
NEON_GREEN = 46
NEON_RED = 196

GRAY_MED = 245
GRAY_DARK = 238

WHITE = 255
BLACK = 0

# Rows reserved above and below the stage area
HEADER_ROWS = 1
FOOTER_ROWS = 2


@dataclass(frozen=True)
class Cell:
    """One character position with its 256-color foreground/background."""
    char: str = ' '
    fg: int = 7
    bg: int = -1  # -1 = terminal default


BLANK = Cell()


class DoubleBuffer:
    """
    Back/front pair of cell grids for flicker-free redraws.

    Each frame is drawn into the back grid; present() diffs it against
    the front grid and emits only changed cells, moving the cursor once
    per contiguous run and re-emitting colors only when they change.
    """

    def __init__(self, term: Terminal):
        self.term = term
        self.width = term.width
        self.height = term.height
        self.front: List[List[Cell]] = self._blank_grid()
        self.back: List[List[Cell]] = self._blank_grid()

    def _blank_grid(self) -> List[List[Cell]]:
        return [[BLANK] * self.width for _ in range(self.height)]

    def resize(self, width: int, height: int):
        self.width = width
        self.height = height
        self.front = self._blank_grid()
        self.back = self._blank_grid()

    def clear_back(self):
        self.back = self._blank_grid()

    def put(self, x: int, y: int, char: str, fg: int = 7, bg: int = -1):
        """Set one back-buffer cell; positions off the grid are dropped."""
        if 0 <= x < self.width and 0 <= y < self.height:
            self.back[y][x] = Cell(char or ' ', fg, bg)

    def put_text(self, x: int, y: int, text: str, fg: int = 7, bg: int = -1,
                 limit: Optional[int] = None):
        if limit is not None:
            text = text[:max(0, limit)]
        for i, char in enumerate(text):
            self.put(x + i, y, char, fg, bg)

    def fill_rect(self, x: int, y: int, w: int, h: int, fg: int = 7, bg: int = -1, char: str = ' '):
        for j in range(h):
            self.put_text(x, y + j, char * w, fg, bg)

    def frame_rect(self, x: int, y: int, w: int, h: int, fg: int = 7, char: str = '#'):
        """Outline a rectangle, leaving its interior untouched."""
        for i in range(w):
            self.put(x + i, y, char, fg)
            self.put(x + i, y + h - 1, char, fg)
        for j in range(1, h - 1):
            self.put(x, y + j, char, fg)
            self.put(x + w - 1, y + j, char, fg)

    def _style(self, cell: Cell) -> str:
        parts = [self.term.normal]
        if cell.bg >= 0:
            parts.append(self.term.on_color(cell.bg))
        parts.append(self.term.color(cell.fg))
        return ''.join(parts)

    def present(self) -> str:
        """Swap grids and return the escape output for changed cells."""
        output = []
        style = None
        for y, (back_row, front_row) in enumerate(zip(self.back, self.front)):
            cursor = None
            for x, cell in enumerate(back_row):
                if cell == front_row[x]:
                    continue
                if cursor != x:
                    output.append(self.term.move_xy(x, y))
                if (cell.fg, cell.bg) != style:
                    output.append(self._style(cell))
                    style = (cell.fg, cell.bg)
                output.append(cell.char)
                cursor = x + 1

        self.front, self.back = self.back, self.front
        return ''.join(output)


def hex_to_rgb(color: str):
    """Parse '#rrggbb' into an (r, g, b) tuple. Unparseable colors are white."""
    value = color.lstrip('#')
    if len(value) != 6:
        return (255, 255, 255)
    try:
        return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return (255, 255, 255)


@dataclass
class StageRenderer:
    """
    Draws the stage: sprite boxes, bubbles, collision banner and HUD.

    Stage coordinates are scaled to the terminal area between the
    header and footer rows.
    """
    term: Terminal
    stage: Stage
    buffer: DoubleBuffer = field(init=False)
    _palette: Dict[str, int] = field(init=False, default_factory=dict)

    def __post_init__(self):
        self.buffer = DoubleBuffer(self.term)

    @property
    def width(self) -> int:
        return self.buffer.width

    @property
    def stage_height(self) -> int:
        """Rows available to the stage area."""
        return max(1, self.buffer.height - HEADER_ROWS - FOOTER_ROWS)

    def to_cell(self, x: float, y: float):
        """Map stage coordinates to a buffer cell."""
        cx = int(x * self.width / STAGE_WIDTH)
        cy = HEADER_ROWS + int(y * self.stage_height / STAGE_HEIGHT)
        return cx, cy

    def color_for(self, sprite: Sprite) -> int:
        """256-color index for a sprite's hex color (cached)."""
        if sprite.color not in self._palette:
            self._palette[sprite.color] = self.term.rgb_downconvert(*hex_to_rgb(sprite.color))
        return self._palette[sprite.color]

    def resize(self, width: int, height: int):
        self.buffer.resize(width, height)

    def draw_sprite(self, sprite: Sprite):
        x0, y0 = self.to_cell(sprite.x, sprite.y)
        x1, y1 = self.to_cell(sprite.right, sprite.bottom)
        w = max(3, x1 - x0)
        h = max(3, y1 - y0)
        color = self.color_for(sprite)

        if sprite.flash:
            self.buffer.fill_rect(x0, y0, w, h, BLACK, WHITE)
            self.buffer.put_text(x0 + 1, y0 + 1, sprite.name, BLACK, WHITE, limit=w - 2)
        else:
            self.buffer.frame_rect(x0, y0, w, h, color)
            self.buffer.put_text(x0 + 1, y0 + 1, sprite.name, color, limit=w - 2)
        if sprite.current_animation and h > 3:
            self.buffer.put_text(x0 + 1, y0 + 2, sprite.current_animation, NEON_YELLOW, limit=w - 2)

        if sprite.bubble:
            text = sprite.bubble.text
            bubble = f'"{text}"' if sprite.bubble.kind == 'say' else f'({text})'
            self.buffer.put_text(x0, max(HEADER_ROWS, y0 - 1), bubble, WHITE)

    def draw_hud(self):
        status = 'RUNNING' if self.stage.is_running else 'IDLE'
        self.buffer.put_text(0, 0, '=' * self.width, GRAY_DARK)
        self.buffer.put_text(2, 0, ' SCRATCH MINI ', NEON_MAGENTA)
        status_text = f' {status}  SPRITES:{len(self.stage.sprites)} '
        self.buffer.put_text(self.width - len(status_text) - 1, 0, status_text,
                             NEON_GREEN if self.stage.is_running else GRAY_MED)

        footer_y = self.buffer.height - FOOTER_ROWS
        if self.stage.collision_message:
            self.buffer.put_text(2, footer_y, self.stage.collision_message, NEON_RED)
        self.buffer.put_text(2, footer_y + 1, '[R] Run all  [S] Stop  [Q] Quit', GRAY_MED)

    def render(self) -> str:
        """Render one frame and return the terminal output for changed cells."""
        self.buffer.clear_back()
        for sprite in self.stage.sprites:
            self.draw_sprite(sprite)
        self.draw_hud()
        return self.buffer.present()
