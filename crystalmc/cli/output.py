"""Output formats of the CLI, for humans or for machines parsing it.
"""

from .lang import get_raw as _raw

import shutil
import time
import sys
import re

from typing import List, Tuple, Optional


class OutputTable:
    """Base class for formatting tables, a row of none is a separator.
    """

    def __init__(self) -> None:
        self.rows: List[Optional[Tuple[str, ...]]] = []
        self.columns_length: List[int] = []

    def add(self, *cells) -> None:
        row = tuple(map(str, cells))
        self.rows.append(row)
        for i, cell in enumerate(row):
            if i < len(self.columns_length):
                self.columns_length[i] = max(self.columns_length[i], len(cell))
            else:
                self.columns_length.append(len(cell))

    def separator(self) -> None:
        self.rows.append(None)

    def print(self) -> None:
        raise NotImplementedError


class Output:
    """Abstract output of the CLI, a task is a single line updated in place until it's
    finished.
    """

    def table(self) -> OutputTable:
        raise NotImplementedError

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:
        """Update the current task, or create it.
        """
        raise NotImplementedError

    def finish(self) -> None:
        """Finish the current task, if any.
        """
        raise NotImplementedError

    def print(self, text: str) -> None:
        """Raw print of the given text without adding a new line, used to forward the
        game's output.
        """
        raise NotImplementedError


class HumanOutput(Output):

    state_colors = {
        "OK": "\033[92m",
        "FAILED": "\033[31m",
        "WARN": "\033[33m",
        "INFO": "\033[34m",
        "HALT": "\033[33m",
    }

    print_colors = [
        ("ERROR", "\033[31m"),
        ("FATAL", "\033[31m"),
        ("WARN", "\033[33m"),
    ]

    def __init__(self, color: bool) -> None:
        self.color = color
        self.term_width = 0
        self.term_width_time = 0.0
        self.last_len: Optional[int] = None

    def get_term_width(self) -> int:
        """Terminal width, refreshed at most once per second.
        """
        now = time.monotonic()
        if now - self.term_width_time > 1:
            self.term_width_time = now
            self.term_width = shutil.get_terminal_size().columns
        return self.term_width

    def table(self) -> OutputTable:
        return HumanTable()

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:

        term_width = self.get_term_width()
        if term_width < 20:
            return

        if state is None:
            header = "\r         "
        else:
            color = self.state_colors.get(state) if self.color else None
            if color is None:
                header = f"\r[{state:^6s}] "
            else:
                header = f"\r[{color}{state:^6s}\033[0m] "

        msg = "" if key is None else _raw(key, kwargs)
        if len(msg) + 9 > term_width:
            msg = f"{msg[:term_width - 12]}..."

        # Pad with spaces to erase the previous, longer, message.
        padding = ""
        if self.last_len is not None and self.last_len > len(msg):
            padding = " " * (self.last_len - len(msg))

        sys.stdout.write(f"{header}{msg}{padding}")
        sys.stdout.flush()
        self.last_len = len(msg)

    def finish(self) -> None:
        if self.last_len is not None:
            print()
            self.last_len = None

    def print(self, text: str) -> None:
        if self.color:
            for token, code in self.print_colors:
                if token in text:
                    print(code, text, "\033[0m", sep="", end="")
                    return
        print(text, end="")


class HumanTable(OutputTable):

    def print(self) -> None:

        lines = ["─" * length for length in self.columns_length]
        row_format = "│ {} │".format(" │ ".join(f"{{:{length}s}}" for length in self.columns_length))

        print("┌─{}─┐".format("─┬─".join(lines)))
        for row in self.rows:
            if row is None:
                print("├─{}─┤".format("─┼─".join(lines)))
            else:
                cells = row + ("",) * (len(self.columns_length) - len(row))
                print(row_format.format(*cells))
        print("└─{}─┘".format("─┴─".join(lines)))


class MachineOutput(Output):
    """Output of lines `<function>:<arg>,<arg>...` where new lines, carriage returns and
    commas of the arguments are escaped.
    """

    escape_re = re.compile("[\\n\\r,]")

    @classmethod
    def escape(cls, s: str) -> str:
        return cls.escape_re.sub(lambda m: {"\n": "\\n", "\r": "\\r"}.get(m.group(), "\\" + m.group()), s)

    def print_function(self, name: str, *args: str, **kwargs) -> None:
        values = [*args, *(f"{k}={v}" for k, v in kwargs.items())]
        print(name, ":", ",".join(map(self.escape, values)), sep="")

    def table(self) -> OutputTable:
        return MachineTable(self)

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:
        self.print_function("task", str(state), str(key), **kwargs)

    def finish(self) -> None:
        pass

    def print(self, text: str) -> None:
        self.print_function("print", text)


class MachineTable(OutputTable):

    def __init__(self, out: MachineOutput) -> None:
        super().__init__()
        self.out = out

    def print(self) -> None:
        self.out.print_function("table", str(len(self.rows)))
        for row in self.rows:
            if row is None:
                self.out.print_function("sep")
            else:
                self.out.print_function("row", *row)
