"""Terminal output helpers and the operator confirmation channel."""
import os
import re
import sys

# Color and style definitions
C_RESET = "\033[0m"
C_BOLD = "\033[1m"
C_DIM = "\033[2m"
C_RED = "\033[91m"
C_YELLOW = "\033[93m"
C_BLUE = "\033[94m"
C_GREEN = "\033[92m"
C_CYAN = "\033[96m"

# Box drawing
BOX_TL, BOX_TR, BOX_BL, BOX_BR = "╭", "╮", "╰", "╯"
BOX_H, BOX_V = "─", "│"
WIDTH = 70

_ANSI = re.compile(r"\033\[[0-9;]*m")
_color_enabled = True


def set_color(enabled: bool):
    global _color_enabled
    _color_enabled = enabled


def color_wanted(no_color_flag: bool = False) -> bool:
    if no_color_flag or os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def paint(text: str, *styles) -> str:
    if not _color_enabled or not styles:
        return text
    return "".join(styles) + text + C_RESET


def strip_ansi(text: str) -> str:
    return _ANSI.sub("", text)


def box(text: str, color: str) -> str:
    """Three-line banner with ``text`` centred vertically."""
    inner = WIDTH - 4
    padding = max(0, inner - len(strip_ansi(text)))
    lines = [
        f"{BOX_TL}{BOX_H * (WIDTH - 2)}{BOX_TR}",
        f"{BOX_V} {' ' * inner} {BOX_V}",
        f"{BOX_V} {text}{' ' * padding} {BOX_V}",
        f"{BOX_V} {' ' * inner} {BOX_V}",
        f"{BOX_BL}{BOX_H * (WIDTH - 2)}{BOX_BR}",
    ]
    return "\n".join(paint(line, color) for line in lines)


def rule() -> str:
    return paint("─" * WIDTH, C_DIM)


def section_header(title: str, color: str = C_CYAN) -> str:
    return "\n" + paint(f"→ {title}", color, C_BOLD) + "\n  " + paint("─" * 60, C_DIM)


def item(text: str, mark: str = "→", color: str = C_DIM, indent: int = 2) -> str:
    return f"{' ' * indent}{paint(mark, color)} {text}"


AFFIRMATIVE = {"y", "yes"}


class ConsoleOperator:
    """Operator channel backed by stdin/stdout."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def _ask(self, prompt: str) -> str:
        try:
            return input(prompt)
        except EOFError:
            self.stream.write("\n")
            return ""

    def confirm(self, question: str) -> bool:
        """Only an explicit yes approves; anything else declines."""
        answer = self._ask(paint(f"{question} (yes/no): ", C_YELLOW))
        return answer.strip().lower() in AFFIRMATIVE

    def acknowledge(self, message: str):
        self._ask(paint(f"{message} ", C_YELLOW))
